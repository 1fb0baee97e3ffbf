"""
Exploratory Data Analysis (EDA) Module
======================================

Figures describing the raw training table before any model is fitted.

Functions:
    - plot_class_distribution: Row counts per class label
    - plot_missing_values: Share of missing values per column
    - plot_correlation_matrix: Correlation heatmap of numeric features
    - plot_feature_distributions: Box plots of selected features by class
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)

plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_class_distribution(
    df: pd.DataFrame,
    label_column: str = "classe",
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of row counts per class.

    Args:
        df: Labelled table
        label_column: Name of the class label column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    counts = df[label_column].value_counts().sort_index()

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(counts.index.astype(str), counts.values, alpha=0.8)

    for x, count in zip(counts.index.astype(str), counts.values):
        ax.text(x, count, f"{count / len(df) * 100:.1f}%", ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Class')
    ax.set_ylabel('Rows')
    ax.set_title('Class Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class distribution plot saved to {save_path}")

    return fig


def plot_missing_values(
    df: pd.DataFrame,
    top_n: int = 40,
    figsize: Tuple[int, int] = (12, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.Series]:
    """
    Horizontal bar chart of the columns with the highest missing share.

    Args:
        df: Table to analyze
        top_n: Number of columns to show
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, missing fraction per column sorted descending)
    """
    missing = df.isnull().mean().sort_values(ascending=False)
    shown = missing[missing > 0].head(top_n)

    fig, ax = plt.subplots(figsize=figsize)

    if len(shown):
        ax.barh(shown.index[::-1], shown.values[::-1], color='coral', alpha=0.8)
    else:
        ax.text(0.5, 0.5, 'No missing values', ha='center', va='center', transform=ax.transAxes)

    ax.set_xlim([0, 1])
    ax.set_xlabel('Fraction Missing')
    ax.set_title(
        f'Missing Values ({int((missing > 0).sum())} of {df.shape[1]} columns affected)',
        fontsize=14,
        fontweight='bold'
    )
    ax.tick_params(axis='y', labelsize=7)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Missing values plot saved to {save_path}")

    return fig, missing


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for the fully populated numeric columns.

    Args:
        df: Table with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    numeric = df.select_dtypes(include=[np.number])
    numeric = numeric.loc[:, numeric.notnull().all()]
    corr_matrix = numeric.corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.2,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    ax.tick_params(labelsize=6)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_feature_distributions(
    df: pd.DataFrame,
    label_column: str = "classe",
    columns: Optional[List[str]] = None,
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plots of features split by class.

    Args:
        df: Labelled table
        label_column: Name of the class label column
        columns: Features to plot (default: sensor totals, or the first six
            fully populated numeric columns)
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = [c for c in df.columns if c.startswith('total_accel')]
        if not columns:
            numeric = df.select_dtypes(include=[np.number])
            columns = numeric.columns[numeric.notnull().all()].tolist()[:6]

    n_cols = len(columns)
    n_rows = (n_cols + 1) // 2

    fig, axes = plt.subplots(max(n_rows, 1), 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    order = sorted(df[label_column].dropna().unique())
    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.boxplot(data=df, x=label_column, y=col, order=order, ax=ax)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')
        ax.set_xlabel('')

    # Hide unused subplots
    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Feature Distributions by Class', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature distribution plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    label_column: str = "classe",
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Labelled training table
        label_column: Name of the class label column
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "figures": [],
        "class_counts": df[label_column].value_counts().sort_index().to_dict(),
        "missing_fraction": None
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Plotting class distribution...")
    plot_class_distribution(df, label_column, save_path=str(output_dir / "01_class_distribution.png"))
    report["figures"].append("01_class_distribution.png")

    logger.info("Analyzing missing values...")
    _, missing = plot_missing_values(df, save_path=str(output_dir / "02_missing_values.png"))
    report["figures"].append("02_missing_values.png")
    report["missing_fraction"] = missing.to_dict()

    logger.info("Computing correlation matrix...")
    plot_correlation_matrix(
        df.drop(columns=[label_column]),
        save_path=str(output_dir / "03_correlation_matrix.png")
    )
    report["figures"].append("03_correlation_matrix.png")

    logger.info("Plotting feature distributions by class...")
    plot_feature_distributions(df, label_column, save_path=str(output_dir / "04_feature_distributions.png"))
    report["figures"].append("04_feature_distributions.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_missing_value_insights(missing_fraction: Dict[str, float], threshold: float = 0.9) -> None:
    """
    Print how missingness is distributed across columns.

    Args:
        missing_fraction: Column name to fraction of missing values
        threshold: Fraction above which a column counts as mostly empty
    """
    series = pd.Series(missing_fraction, dtype=float)

    print("\n" + "=" * 50)
    print("MISSING VALUE INSIGHTS")
    print("=" * 50)
    print(f"  • Complete columns: {int((series == 0).sum())}")
    print(f"  • Partially missing (< {threshold:.0%}): {int(((series > 0) & (series < threshold)).sum())}")
    print(f"  • Mostly empty (>= {threshold:.0%}): {int((series >= threshold).sum())}")
    print("\nColumns with any missing value are discarded during cleaning; no imputation is done.")
    print("=" * 50 + "\n")
