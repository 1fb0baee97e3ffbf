"""
Model Evaluation Module
=======================

Scores fitted classifiers against the held-out evaluation subset.

Features:
    - Confusion matrix (true class x predicted class)
    - Accuracy with exact binomial 95% confidence interval
    - No-information rate, Cohen's kappa, out-of-sample error
    - Per-class precision, recall, specificity, balanced accuracy
    - Explicit best-model selection rule
    - Confusion matrix, model comparison and tuning curve plots
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import accuracy_score, cohen_kappa_score, confusion_matrix

from .model import ClassificationModel, split_features_label

logger = logging.getLogger(__name__)


def compute_confusion_matrix(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Cross-tabulate true against predicted classes.

    Args:
        y_true: Ground truth labels
        y_pred: Predicted labels
        labels: Class labels in display order (default: sorted union)

    Returns:
        DataFrame with true classes as rows and predicted classes as columns
    """
    if labels is None:
        labels = sorted(set(np.asarray(y_true).tolist()) | set(np.asarray(y_pred).tolist()))

    cm = confusion_matrix(y_true, y_pred, labels=labels)
    return pd.DataFrame(
        cm,
        index=pd.Index(labels, name='true'),
        columns=pd.Index(labels, name='predicted')
    )


def calculate_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[str]] = None,
    confidence_level: float = 0.95
) -> Dict[str, Any]:
    """
    Calculate overall and per-class classification metrics.

    Args:
        y_true: Ground truth labels
        y_pred: Predicted labels
        labels: Class labels in display order
        confidence_level: Level of the accuracy confidence interval

    Returns:
        Dictionary containing 'overall', 'per_class' and 'confusion_matrix'
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)

    if len(y_true) != len(y_pred):
        raise ValueError(f"Length mismatch: {len(y_true)} labels vs {len(y_pred)} predictions")
    if len(y_true) == 0:
        raise ValueError("Cannot evaluate an empty table")

    cm = compute_confusion_matrix(y_true, y_pred, labels)
    counts = cm.to_numpy()
    n = int(counts.sum())
    n_correct = int(np.trace(counts))

    accuracy = accuracy_score(y_true, y_pred)
    ci = stats.binomtest(n_correct, n).proportion_ci(confidence_level=confidence_level, method='exact')
    no_information_rate = counts.sum(axis=1).max() / n
    kappa = cohen_kappa_score(y_true, y_pred, labels=list(cm.index))
    if np.isnan(kappa):
        kappa = 1.0 if n_correct == n else 0.0

    per_class = {}
    for i, cls in enumerate(cm.index):
        tp = counts[i, i]
        fn = counts[i, :].sum() - tp
        fp = counts[:, i].sum() - tp
        tn = n - tp - fn - fp

        recall = tp / (tp + fn) if (tp + fn) else 0.0
        specificity = tn / (tn + fp) if (tn + fp) else 0.0
        precision = tp / (tp + fp) if (tp + fp) else 0.0

        per_class[str(cls)] = {
            'precision': float(precision),
            'recall': float(recall),
            'specificity': float(specificity),
            'balanced_accuracy': float((recall + specificity) / 2),
            'prevalence': float((tp + fn) / n),
            'support': int(tp + fn)
        }

    metrics = {
        'overall': {
            'accuracy': float(accuracy),
            'accuracy_ci_lower': float(ci.low),
            'accuracy_ci_upper': float(ci.high),
            'confidence_level': confidence_level,
            'no_information_rate': float(no_information_rate),
            'kappa': float(kappa),
            'out_of_sample_error': float(1.0 - accuracy),
            'n_samples': n
        },
        'per_class': per_class,
        'confusion_matrix': cm
    }

    return metrics


def evaluate_classifier(
    model: ClassificationModel,
    eval_df: pd.DataFrame,
    label_column: str = "classe"
) -> Dict[str, Any]:
    """
    Score one fitted classifier on the evaluation subset.

    Args:
        model: Fitted classifier
        eval_df: Cleaned evaluation table including the label column
        label_column: Name of the class label column

    Returns:
        Dictionary with 'predictions' and 'metrics'
    """
    X, y = split_features_label(eval_df, label_column)
    y_pred = model.predict(X)

    labels = sorted(set(y.tolist()) | set(np.asarray(y_pred).tolist()))
    metrics = calculate_metrics(y.to_numpy(), y_pred, labels=labels)

    logger.info(f"{model.name}: holdout accuracy {metrics['overall']['accuracy']:.4f}")

    return {
        'model_name': model.name,
        'predictions': y_pred,
        'metrics': metrics
    }


def select_best_model(evaluations: Dict[str, Dict[str, Any]]) -> str:
    """
    Choose the model with the highest holdout accuracy.

    Ties go to the model evaluated first.

    Args:
        evaluations: Model name to evaluate_classifier result

    Returns:
        Name of the selected model
    """
    if not evaluations:
        raise ValueError("No evaluations to select from")

    best_name = None
    best_accuracy = -1.0
    for name, result in evaluations.items():
        accuracy = result['metrics']['overall']['accuracy']
        if accuracy > best_accuracy:
            best_name, best_accuracy = name, accuracy

    logger.info(f"Selected model: {best_name} (holdout accuracy {best_accuracy:.4f})")
    return best_name


def comparison_table(evaluations: Dict[str, Dict[str, Any]]) -> pd.DataFrame:
    """Tabulate the overall metrics of every evaluated model."""
    rows = {name: result['metrics']['overall'] for name, result in evaluations.items()}
    table = pd.DataFrame.from_dict(rows, orient='index')
    table.index.name = 'model'
    return table[['accuracy', 'accuracy_ci_lower', 'accuracy_ci_upper', 'kappa', 'out_of_sample_error']]


def plot_confusion_matrix(
    cm: pd.DataFrame,
    title: str = "Confusion Matrix",
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot a confusion matrix as an annotated heatmap.

    Args:
        cm: Confusion matrix from compute_confusion_matrix
        title: Figure title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        cm,
        annot=True,
        fmt='d',
        cmap='Blues',
        cbar_kws={"label": "Count"},
        ax=ax
    )

    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    ax.set_title(title, fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_model_comparison(
    evaluations: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of holdout accuracy with confidence intervals per model.

    Args:
        evaluations: Model name to evaluate_classifier result
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    table = comparison_table(evaluations)

    fig, ax = plt.subplots(figsize=figsize)

    x = np.arange(len(table))
    accuracy = table['accuracy'].to_numpy()
    yerr = np.vstack([
        accuracy - table['accuracy_ci_lower'].to_numpy(),
        table['accuracy_ci_upper'].to_numpy() - accuracy
    ])
    colors = ['green' if a > 0.95 else 'orange' if a > 0.7 else 'red' for a in accuracy]

    ax.bar(x, accuracy, 0.6, yerr=yerr, capsize=6, color=colors, alpha=0.8)
    for xi, a in zip(x, accuracy):
        ax.text(xi, a + 0.01, f"{a:.4f}", ha='center', fontsize=9)

    ax.set_xticks(x)
    ax.set_xticklabels(table.index, rotation=20, ha='right')
    ax.set_ylabel('Holdout Accuracy')
    ax.set_ylim([0, 1.08])
    ax.set_title('Model Comparison (Holdout Accuracy, 95% CI)', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def plot_tuning_curve(
    model: ClassificationModel,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot cross-validated accuracy against the model's tuning parameter.

    Grids with a second parameter (gradient boosting depth) are drawn as one
    line per value of that parameter.

    Args:
        model: Fitted classifier
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    results = model.tuning_results()
    param = model.tuning_parameter or results.columns[0]
    others = [c for c in results.columns
              if c not in (param, 'mean_accuracy', 'std_accuracy', 'rank')]

    fig, ax = plt.subplots(figsize=figsize)

    groups = results.groupby(others) if others else [(None, results)]
    for key, group in groups:
        group = group.sort_values(param)
        label = None
        if others:
            key = key if isinstance(key, tuple) else (key,)
            label = ", ".join(f"{o}={k}" for o, k in zip(others, key))
        ax.errorbar(
            group[param].astype(float),
            group['mean_accuracy'],
            yerr=group['std_accuracy'],
            marker='o',
            capsize=4,
            label=label
        )

    ax.set_xlabel(param)
    ax.set_ylabel(f'Accuracy ({model.cv_folds}-fold CV)')
    ax.set_title(f'{model.name}: Accuracy vs {param}', fontsize=12, fontweight='bold')
    if others:
        ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tuning curve saved to {save_path}")

    return fig


def _metrics_to_json(metrics: Dict[str, Any]) -> Dict[str, Any]:
    serializable = {k: v for k, v in metrics.items() if k != 'confusion_matrix'}
    cm = metrics['confusion_matrix']
    serializable['confusion_matrix'] = {
        'labels': [str(c) for c in cm.index],
        'counts': cm.to_numpy().tolist()
    }
    return serializable


def evaluate_models(
    models: Dict[str, ClassificationModel],
    eval_df: pd.DataFrame,
    label_column: str = "classe",
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Evaluate every model, select the best one and write the report files.

    Args:
        models: Model name to fitted classifier
        eval_df: Cleaned evaluation table including the label column
        label_column: Name of the class label column
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing per-model evaluations, the comparison table,
        the selected model name and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION")
    logger.info("=" * 60)

    evaluations = {}
    figures = []

    for name, model in models.items():
        evaluations[name] = evaluate_classifier(model, eval_df, label_column)

        cm_file = f"eval_confusion_matrix_{name}.png"
        accuracy = evaluations[name]['metrics']['overall']['accuracy']
        plot_confusion_matrix(
            evaluations[name]['metrics']['confusion_matrix'],
            title=f"{name} (accuracy {accuracy:.4f})",
            save_path=str(figures_dir / cm_file)
        )
        figures.append(cm_file)

        curve_file = f"tuning_curve_{name}.png"
        plot_tuning_curve(model, save_path=str(figures_dir / curve_file))
        figures.append(curve_file)

    best_model = select_best_model(evaluations)

    plot_model_comparison(evaluations, save_path=str(figures_dir / "eval_model_comparison.png"))
    figures.append("eval_model_comparison.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(
            {
                'best_model': best_model,
                'models': {name: _metrics_to_json(r['metrics']) for name, r in evaluations.items()}
            },
            f,
            indent=2
        )
    logger.info(f"Metrics saved to {metrics_file}")

    comparison = comparison_table(evaluations)

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    for name, row in comparison.iterrows():
        logger.info(f"  {name}: accuracy {row['accuracy']:.4f}, kappa {row['kappa']:.4f}")
    logger.info(f"  Selected: {best_model}")
    logger.info("=" * 60)

    return {
        'evaluations': evaluations,
        'comparison': comparison,
        'best_model': best_model,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }


def print_evaluation_report(result: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        result: Result dictionary from evaluate_models
    """
    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)

    for name, evaluation in result['evaluations'].items():
        metrics = evaluation['metrics']
        overall = metrics['overall']

        print(f"\n{name}")
        print("-" * 70)
        print("Confusion Matrix (rows: actual, columns: predicted):")
        print(metrics['confusion_matrix'].to_string())
        print(f"\n  Accuracy: {overall['accuracy']:.4f} "
              f"(95% CI {overall['accuracy_ci_lower']:.4f} - {overall['accuracy_ci_upper']:.4f})")
        print(f"  No Information Rate: {overall['no_information_rate']:.4f}")
        print(f"  Kappa: {overall['kappa']:.4f}")
        print(f"  Expected out-of-sample error: {overall['out_of_sample_error']:.4f}")

        print(f"\n  {'Class':<8} {'Precision':<11} {'Recall':<11} {'Specificity':<13} {'Support':<8}")
        for cls, m in metrics['per_class'].items():
            print(f"  {cls:<8} {m['precision']:<11.4f} {m['recall']:<11.4f} "
                  f"{m['specificity']:<13.4f} {m['support']:<8}")

    print("\n" + "-" * 70)
    print("Comparison:")
    print(result['comparison'].round(4).to_string())
    print(f"\nSelected model (highest holdout accuracy): {result['best_model']}")
    print("=" * 70 + "\n")
