"""
Data Loader Module
==================

Handles CSV ingestion and schema checks for the training and examinable tables.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load a CSV table with header-derived column names
    - load_datasets: Load the training and examinable tables together
    - validate_schema: Check column alignment between the two tables
    - print_data_summary: Console summary of a table
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import yaml

logger = logging.getLogger(__name__)

# Blank cells and spreadsheet division errors both mean "no measurement"
DEFAULT_NA_VALUES = ["NA", "", "#DIV/0!"]


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    logger.info(f"Loaded configuration from {config_path}")
    return config or {}


def load_data(
    file_path: str,
    na_values: Optional[List[str]] = None,
    expected_columns: Optional[int] = None
) -> pd.DataFrame:
    """
    Load a comma-separated table with a header row.

    Args:
        file_path: Path to the CSV file
        na_values: Strings to read as missing (default: DEFAULT_NA_VALUES)
        expected_columns: Expected number of columns (optional validation)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the file is empty or has the wrong number of columns
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    if na_values is None:
        na_values = DEFAULT_NA_VALUES

    try:
        df = pd.read_csv(file_path, na_values=na_values, keep_default_na=True, low_memory=False)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Data file is empty: {file_path}") from e

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if df.empty:
        raise ValueError(f"Data file has a header but no rows: {file_path}")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]} in {file_path}"
        )

    return df


def load_datasets(
    train_path: str,
    test_path: str,
    na_values: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the labelled training table and the examinable table.

    Args:
        train_path: Path to the training CSV (contains the label column)
        test_path: Path to the examinable CSV (label withheld)
        na_values: Strings to read as missing

    Returns:
        Tuple of (train_df, test_df)
    """
    train_df = load_data(train_path, na_values=na_values)
    test_df = load_data(test_path, na_values=na_values)
    return train_df, test_df


def validate_schema(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    label_column: str = "classe",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate column alignment between the training and examinable tables.

    Checks:
        - The label column exists in the training table
        - The label column is absent from the examinable table
        - Every training feature column exists in the examinable table

    Args:
        train_df: Labelled training table
        test_df: Examinable table
        label_column: Name of the class label column
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "train_shape": train_df.shape,
        "test_shape": test_df.shape,
        "label_column": label_column,
        "issues": []
    }

    if label_column not in train_df.columns:
        issue = f"Label column '{label_column}' not found in training table"
        report["issues"].append(issue)
        logger.warning(issue)

    if label_column in test_df.columns:
        issue = f"Label column '{label_column}' present in examinable table"
        report["issues"].append(issue)
        logger.warning(issue)

    feature_columns = [c for c in train_df.columns if c != label_column]
    missing = [c for c in feature_columns if c not in test_df.columns]
    if missing:
        issue = f"Columns missing from examinable table: {missing}"
        report["issues"].append(issue)
        report["missing_columns"] = missing
        logger.warning(issue)

    # Extra columns (e.g. problem_id) are expected and only reported
    report["extra_columns"] = [c for c in test_df.columns if c not in train_df.columns]

    if label_column in train_df.columns:
        report["class_counts"] = train_df[label_column].value_counts().sort_index().to_dict()

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Schema validation failed: {report['issues']}")

    return is_valid, report


def print_data_summary(df: pd.DataFrame, label_column: Optional[str] = None) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        label_column: Label column to tabulate, if present
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {df.memory_usage(deep=True).sum() / 1024:.2f} KB")

    missing = df.isnull().sum()
    n_with_missing = int((missing > 0).sum())
    fully_populated = df.shape[1] - n_with_missing
    print(f"Columns with missing values: {n_with_missing}")
    print(f"Fully populated columns: {fully_populated}")

    n_numeric = len(df.select_dtypes(include="number").columns)
    print(f"Numeric columns: {n_numeric} | Other columns: {df.shape[1] - n_numeric}")

    if label_column and label_column in df.columns:
        print("\nClass Distribution:")
        print("-" * 40)
        counts = df[label_column].value_counts().sort_index()
        for cls, count in counts.items():
            print(f"  {cls}: {count} ({count / len(df) * 100:.1f}%)")

    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Train fraction: {config['partition']['train_fraction']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/pml-training.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df, label_column="classe")
    else:
        print(f"No data file found at {data_path}")
