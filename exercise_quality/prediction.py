"""
Prediction Module
=================

Applies the selected classifier to the examinable table.

Features:
    - Ordered (Problem_ID, Prediction) table, one row per examinable row
    - Export predictions to CSV
    - One answer file per problem in the submission format
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import pandas as pd

from .model import ClassificationModel

logger = logging.getLogger(__name__)


def predict_examinable(
    model: ClassificationModel,
    examinable_df: pd.DataFrame,
    identifiers: Optional[pd.Series] = None,
    id_column: str = "problem_id"
) -> pd.DataFrame:
    """
    Predict a class for every examinable row.

    Row identifiers come from `identifiers` when given, else from `id_column`
    when the table has it, else from the 1-based row position.

    Args:
        model: Selected fitted classifier
        examinable_df: Examinable table (raw or already projected)
        identifiers: Row identifiers aligned with `examinable_df`
        id_column: Identifier column name in the raw examinable table

    Returns:
        DataFrame with columns 'Problem_ID' and 'Prediction', in input order
    """
    if identifiers is None:
        if id_column in examinable_df.columns:
            identifiers = examinable_df[id_column]
        else:
            identifiers = pd.Series(range(1, len(examinable_df) + 1))

    if len(identifiers) != len(examinable_df):
        raise ValueError(
            f"Got {len(identifiers)} identifiers for {len(examinable_df)} examinable rows"
        )

    # Extra columns such as the identifier are dropped; absent ones fail in predict()
    features = model.feature_columns_
    X = examinable_df[features] if set(features).issubset(examinable_df.columns) else examinable_df
    predictions = model.predict(X)

    return pd.DataFrame({
        'Problem_ID': list(identifiers),
        'Prediction': list(predictions)
    })


def export_predictions(
    predictions: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export the prediction table to CSV.

    Args:
        predictions: Table from predict_examinable
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"predictions_{timestamp}.csv"
    else:
        filename = "predictions.csv"

    filepath = output_path / filename
    predictions.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def write_answer_files(predictions: pd.DataFrame, output_dir: str) -> List[str]:
    """
    Write one `problem_id_<id>.txt` file per prediction.

    Each file holds only the predicted class, without a trailing newline.

    Args:
        predictions: Table from predict_examinable
        output_dir: Directory for the answer files

    Returns:
        List of written file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for problem_id, prediction in zip(predictions['Problem_ID'], predictions['Prediction']):
        filepath = output_dir / f"problem_id_{problem_id}.txt"
        filepath.write_text(str(prediction))
        paths.append(str(filepath))

    logger.info(f"Wrote {len(paths)} answer files to {output_dir}")
    return paths


def run_final_prediction(
    model: ClassificationModel,
    examinable_df: pd.DataFrame,
    identifiers: Optional[pd.Series] = None,
    id_column: str = "problem_id",
    output_dir: Optional[str] = "data/predictions/",
    answer_files_dir: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the final prediction workflow.

    This function:
    1. Predicts a class for every examinable row
    2. Exports the prediction table
    3. Optionally writes one answer file per problem

    Args:
        model: Selected fitted classifier
        examinable_df: Cleaned (or raw) examinable table
        identifiers: Row identifiers aligned with `examinable_df`
        id_column: Identifier column name
        output_dir: Directory for the predictions CSV (None to skip)
        answer_files_dir: Directory for answer files (None to skip)

    Returns:
        Dictionary containing predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION")
    logger.info("=" * 60)
    logger.info(f"Model: {model.name}")
    logger.info(f"Examinable rows: {len(examinable_df)}")

    predictions = predict_examinable(model, examinable_df, identifiers, id_column)

    csv_path = export_predictions(predictions, output_dir) if output_dir else None
    answer_files = write_answer_files(predictions, answer_files_dir) if answer_files_dir else []

    result = {
        'model_name': model.name,
        'predictions': predictions,
        'csv_path': csv_path,
        'answer_files': answer_files
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Predictions: {predictions['Prediction'].value_counts().sort_index().to_dict()}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    print("\n" + "=" * 40)
    print(f"PREDICTIONS ({result['model_name']})")
    print("=" * 40)
    print(result['predictions'].to_string(index=False))
    print("-" * 40)

    if result.get('csv_path'):
        print(f"Predictions exported to: {result['csv_path']}")
    if result.get('answer_files'):
        print(f"Answer files written: {len(result['answer_files'])}")

    print("=" * 40 + "\n")
