"""
Data Preprocessing Module
=========================

Handles the stratified train/evaluation partition and column cleaning.

Functions:
    - stratified_partition: Seeded, class-stratified split of the labelled table
    - find_missing_columns: Columns holding at least one missing value
    - near_zero_variance: Frequency-ratio / percent-unique screening
    - FeatureCleaner: Learns the surviving column list and projects tables onto it
    - clean_pipeline: Partition + clean in one call
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split
import joblib

logger = logging.getLogger(__name__)

DEFAULT_FREQ_CUT = 95 / 5
DEFAULT_UNIQUE_CUT = 10.0


def stratified_partition(
    df: pd.DataFrame,
    label_column: str = "classe",
    train_fraction: float = 0.7,
    seed: int = 12345
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a labelled table into fit and evaluation subsets.

    Class proportions are preserved in both subsets. The split depends only
    on the input rows and the seed.

    Args:
        df: Labelled table
        label_column: Name of the class label column
        train_fraction: Fraction of rows assigned to the fit subset
        seed: Random seed

    Returns:
        Tuple of (fit_df, eval_df), both keeping the original row index
    """
    if label_column not in df.columns:
        raise ValueError(f"Label column '{label_column}' not found in table")

    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be between 0 and 1, got {train_fraction}")

    fit_df, eval_df = train_test_split(
        df,
        train_size=train_fraction,
        stratify=df[label_column],
        random_state=seed,
        shuffle=True
    )

    logger.info(
        f"Partitioned {len(df)} rows: {len(fit_df)} fit, {len(eval_df)} evaluation "
        f"(train_fraction={train_fraction}, seed={seed})"
    )

    return fit_df, eval_df


def find_missing_columns(df: pd.DataFrame, exclude: Optional[List[str]] = None) -> List[str]:
    """Return the columns of `df` containing at least one missing value."""
    exclude = set(exclude or [])
    has_missing = df.isnull().any()
    return [col for col in df.columns if has_missing[col] and col not in exclude]


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = DEFAULT_FREQ_CUT,
    unique_cut: float = DEFAULT_UNIQUE_CUT
) -> pd.DataFrame:
    """
    Screen columns for zero and near-zero variance.

    For every column:
        freq_ratio     = count of most frequent value / count of second most frequent
        percent_unique = 100 * distinct values / rows

    A column is flagged when it holds a single distinct value, or when
    freq_ratio > freq_cut and percent_unique <= unique_cut.

    Args:
        df: Table to screen
        freq_cut: Cutoff for the ratio of the two most common values
        unique_cut: Cutoff for the percentage of distinct values

    Returns:
        DataFrame indexed by column name with columns
        'freq_ratio', 'percent_unique', 'zero_var', 'nzv'
    """
    n_rows = len(df)
    records = {}

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)
        n_unique = len(counts)

        if n_unique == 0:
            freq_ratio = np.nan
        elif n_unique == 1:
            freq_ratio = 0.0
        else:
            freq_ratio = counts.iloc[0] / counts.iloc[1]

        percent_unique = 100.0 * n_unique / n_rows if n_rows else 0.0
        zero_var = n_unique <= 1
        nzv = bool(zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut))

        records[col] = {
            'freq_ratio': float(freq_ratio),
            'percent_unique': float(percent_unique),
            'zero_var': bool(zero_var),
            'nzv': nzv
        }

    return pd.DataFrame.from_dict(
        records,
        orient='index',
        columns=['freq_ratio', 'percent_unique', 'zero_var', 'nzv']
    )


class FeatureCleaner:
    """
    Column-filtering pipeline for the sensor tables.

    Learns the surviving feature list from the fit subset only, then projects
    any other table (evaluation, examinable) onto that same list. Rows are
    never modified and no values are imputed.
    """

    def __init__(
        self,
        label_column: str = "classe",
        drop_leading_columns: int = 2,
        freq_cut: float = DEFAULT_FREQ_CUT,
        unique_cut: float = DEFAULT_UNIQUE_CUT
    ):
        """
        Initialize the cleaner.

        Args:
            label_column: Name of the class label column (never removed)
            drop_leading_columns: Number of leading columns removed after the
                missing-value filter (row index and subject identifier)
            freq_cut: Near-zero-variance frequency-ratio cutoff
            unique_cut: Near-zero-variance percent-unique cutoff
        """
        self.label_column = label_column
        self.drop_leading_columns = drop_leading_columns
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

        self.feature_columns: Optional[List[str]] = None
        self.removed_columns: Dict[str, List[str]] = {}
        self.nzv_metrics: Optional[pd.DataFrame] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'FeatureCleaner':
        """
        Learn the surviving feature columns from the fit subset.

        Args:
            df: Fit subset (label column may be present)

        Returns:
            Self for method chaining
        """
        columns = [c for c in df.columns if c != self.label_column]

        # a. columns with any missing value
        missing = find_missing_columns(df[columns])
        columns = [c for c in columns if c not in missing]
        logger.info(f"Removed {len(missing)} columns containing missing values")

        # b. positional removal of the identifier columns
        leading = columns[:self.drop_leading_columns]
        columns = columns[self.drop_leading_columns:]
        logger.info(f"Removed leading identifier columns: {leading}")

        # c. near-zero-variance screening
        self.nzv_metrics = near_zero_variance(df[columns], self.freq_cut, self.unique_cut)
        flagged = self.nzv_metrics.index[self.nzv_metrics['nzv']].tolist()
        columns = [c for c in columns if c not in flagged]
        logger.info(f"Removed {len(flagged)} near-zero-variance columns: {flagged}")

        if not columns:
            raise ValueError("No feature columns survived cleaning")

        self.feature_columns = columns
        self.removed_columns = {
            'missing_values': missing,
            'leading': leading,
            'near_zero_variance': flagged
        }
        self._is_fitted = True

        logger.info(f"{len(columns)} feature columns retained")
        return self

    def transform(self, df: pd.DataFrame, keep_label: bool = True) -> pd.DataFrame:
        """
        Project a table onto the learned feature columns.

        Args:
            df: Table to project (evaluation or examinable)
            keep_label: Keep the label column when the table has one

        Returns:
            Projected DataFrame

        Raises:
            ValueError: If any surviving column is absent from `df`
        """
        if not self._is_fitted:
            raise ValueError("Cleaner must be fitted before transform. Call fit() first.")

        absent = [c for c in self.feature_columns if c not in df.columns]
        if absent:
            raise ValueError(f"Columns not found in table: {absent}")

        columns = list(self.feature_columns)
        if keep_label and self.label_column in df.columns:
            columns.append(self.label_column)

        return df[columns].copy()

    def fit_transform(self, df: pd.DataFrame, keep_label: bool = True) -> pd.DataFrame:
        """
        Fit and transform in one step.

        Args:
            df: Fit subset
            keep_label: Keep the label column

        Returns:
            Cleaned fit subset
        """
        self.fit(df)
        return self.transform(df, keep_label=keep_label)

    def save(self, filepath: str) -> None:
        """
        Save the cleaner state to disk.

        Args:
            filepath: Path to save the cleaner
        """
        state = {
            'label_column': self.label_column,
            'drop_leading_columns': self.drop_leading_columns,
            'freq_cut': self.freq_cut,
            'unique_cut': self.unique_cut,
            'feature_columns': self.feature_columns,
            'removed_columns': self.removed_columns,
            'nzv_metrics': self.nzv_metrics,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Cleaner saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'FeatureCleaner':
        """
        Load a cleaner from disk.

        Args:
            filepath: Path to the saved cleaner

        Returns:
            Loaded FeatureCleaner instance
        """
        state = joblib.load(filepath)

        cleaner = cls(
            label_column=state['label_column'],
            drop_leading_columns=state['drop_leading_columns'],
            freq_cut=state['freq_cut'],
            unique_cut=state['unique_cut']
        )
        cleaner.feature_columns = state['feature_columns']
        cleaner.removed_columns = state['removed_columns']
        cleaner.nzv_metrics = state['nzv_metrics']
        cleaner._is_fitted = state['_is_fitted']

        logger.info(f"Cleaner loaded from {filepath}")
        return cleaner


def clean_pipeline(
    train_df: pd.DataFrame,
    test_df: Optional[pd.DataFrame] = None,
    label_column: str = "classe",
    train_fraction: float = 0.7,
    seed: int = 12345,
    drop_leading_columns: int = 2,
    freq_cut: float = DEFAULT_FREQ_CUT,
    unique_cut: float = DEFAULT_UNIQUE_CUT,
    save_cleaner: Optional[str] = None
) -> Dict[str, Any]:
    """
    Partition the training table and clean all three tables.

    Args:
        train_df: Labelled training table
        test_df: Examinable table (optional)
        label_column: Name of the class label column
        train_fraction: Fraction of rows in the fit subset
        seed: Partition seed
        drop_leading_columns: Leading identifier columns to drop
        freq_cut: Near-zero-variance frequency-ratio cutoff
        unique_cut: Near-zero-variance percent-unique cutoff
        save_cleaner: Path to save the fitted cleaner

    Returns:
        Dictionary containing:
            - fit, evaluation, examinable: Cleaned tables
            - cleaner: Fitted FeatureCleaner
            - feature_columns: Surviving feature names
    """
    logger.info("=" * 60)
    logger.info("STARTING PARTITION AND CLEANING")
    logger.info("=" * 60)

    fit_raw, eval_raw = stratified_partition(
        train_df,
        label_column=label_column,
        train_fraction=train_fraction,
        seed=seed
    )

    cleaner = FeatureCleaner(
        label_column=label_column,
        drop_leading_columns=drop_leading_columns,
        freq_cut=freq_cut,
        unique_cut=unique_cut
    )

    fit_clean = cleaner.fit_transform(fit_raw)
    eval_clean = cleaner.transform(eval_raw)
    examinable = cleaner.transform(test_df, keep_label=False) if test_df is not None else None

    if save_cleaner:
        cleaner.save(save_cleaner)

    result = {
        'fit': fit_clean,
        'evaluation': eval_clean,
        'examinable': examinable,
        'cleaner': cleaner,
        'feature_columns': list(cleaner.feature_columns),
        'label_column': label_column
    }

    logger.info("=" * 60)
    logger.info("CLEANING COMPLETE")
    logger.info(f"  Fit rows: {len(fit_clean)}")
    logger.info(f"  Evaluation rows: {len(eval_clean)}")
    logger.info(f"  Feature columns: {len(cleaner.feature_columns)}")
    logger.info("=" * 60)

    return result


def print_cleaning_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the partition and cleaning results.

    Args:
        result: Dictionary from clean_pipeline
    """
    cleaner = result['cleaner']
    removed = cleaner.removed_columns

    print("\n" + "=" * 50)
    print("CLEANING SUMMARY")
    print("=" * 50)
    print(f"Fit rows: {len(result['fit'])}")
    print(f"Evaluation rows: {len(result['evaluation'])}")
    if result.get('examinable') is not None:
        print(f"Examinable rows: {len(result['examinable'])}")
    print(f"\nRemoved (missing values): {len(removed.get('missing_values', []))}")
    print(f"Removed (leading identifiers): {removed.get('leading', [])}")
    print(f"Removed (near-zero variance): {removed.get('near_zero_variance', [])}")
    print(f"Feature columns retained: {len(result['feature_columns'])}")
    print("=" * 50 + "\n")
