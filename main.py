#!/usr/bin/env python3
"""
Exercise Quality Classifier - Main Pipeline
===========================================

Orchestrates the complete ML pipeline for weight-lifting exercise quality.

Phases:
    1. EDA - Exploratory Data Analysis (optional)
    2. Cleaning - Stratified 70/30 partition and column filtering
    3. Training - Random forest, gradient boosting and decision tree
    4. Evaluation - Holdout accuracy and model selection
    5. Prediction - Classes for the examinable rows

Usage:
    # Run complete pipeline
    python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv

    # Run specific phase
    python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv --phase eda

    # Run with custom config
    python main.py --train ... --test ... --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from exercise_quality.data_loader import load_config, load_datasets, validate_schema, print_data_summary
from exercise_quality.eda import generate_eda_report, print_missing_value_insights
from exercise_quality.preprocessing import clean_pipeline, print_cleaning_summary
from exercise_quality.model import train_models, print_model_summary, ClassificationModel
from exercise_quality.evaluation import evaluate_models, print_evaluation_report
from exercise_quality.prediction import run_final_prediction, print_prediction_results

PHASES = ['eda', 'clean', 'train', 'evaluate', 'predict', 'all']


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def _label_column(config: Dict[str, Any]) -> str:
    return config.get('data', {}).get('label_column', 'classe')


def run_eda(train_df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        train_df: Raw labelled table
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(
        train_df,
        label_column=_label_column(config),
        output_dir=output_dir,
        show_plots=False
    )
    print_missing_value_insights(report['missing_fraction'])

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_cleaning(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Partition and cleaning.

    Args:
        train_df: Raw labelled table
        test_df: Raw examinable table
        config: Configuration dictionary

    Returns:
        Cleaning result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: PARTITION AND CLEANING")
    print("=" * 70)

    partition_config = config.get('partition', {})
    cleaning_config = config.get('cleaning', {})

    result = clean_pipeline(
        train_df,
        test_df,
        label_column=_label_column(config),
        train_fraction=partition_config.get('train_fraction', 0.7),
        seed=partition_config.get('seed', 12345),
        drop_leading_columns=cleaning_config.get('drop_leading_columns', 2),
        freq_cut=cleaning_config.get('freq_cut', 95 / 5),
        unique_cut=cleaning_config.get('unique_cut', 10.0)
    )

    print_cleaning_summary(result)

    return result


def run_training(
    clean_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, ClassificationModel]:
    """
    Execute Phase 3: Model Training.

    Args:
        clean_result: Cleaning result dictionary
        config: Configuration dictionary

    Returns:
        Dictionary of trained models
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    model_dir = config.get('output', {}).get('model_path')

    models = train_models(
        clean_result['fit'],
        clean_result['label_column'],
        config,
        model_dir=model_dir
    )

    print_model_summary(models)

    return models


def run_evaluation(
    models: Dict[str, ClassificationModel],
    clean_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation.

    Args:
        models: Trained models
        clean_result: Cleaning result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('reports_path', 'reports/')

    result = evaluate_models(
        models,
        clean_result['evaluation'],
        label_column=clean_result['label_column'],
        output_dir=output_dir,
        show_plots=False
    )

    print_evaluation_report(result)

    return result


def run_final_prediction_phase(
    models: Dict[str, ClassificationModel],
    eval_result: Dict[str, Any],
    clean_result: Dict[str, Any],
    test_df: pd.DataFrame,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Final Prediction.

    Applies the model with the highest holdout accuracy to the examinable rows.

    Args:
        models: Trained models
        eval_result: Evaluation result with the selected model name
        clean_result: Cleaning result dictionary
        test_df: Raw examinable table (source of row identifiers)
        config: Configuration dictionary

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: FINAL PREDICTION")
    print("=" * 70)

    output_config = config.get('output', {})
    id_column = config.get('data', {}).get('id_column', 'problem_id')

    identifiers = test_df[id_column] if id_column in test_df.columns else None
    answer_dir = output_config.get('answer_files_path') if output_config.get('write_answer_files') else None

    result = run_final_prediction(
        model=models[eval_result['best_model']],
        examinable_df=clean_result['examinable'],
        identifiers=identifiers,
        id_column=id_column,
        output_dir=output_config.get('predictions_path', 'data/predictions/'),
        answer_files_dir=answer_dir
    )

    print_prediction_results(result)

    return result


def _load_inputs(train_path: str, test_path: str, config: Dict[str, Any]):
    data_config = config.get('data', {})
    train_df, test_df = load_datasets(train_path, test_path, na_values=data_config.get('na_values'))
    validate_schema(train_df, test_df, label_column=_label_column(config), strict=True)
    return train_df, test_df


def run_full_pipeline(
    train_path: str,
    test_path: str,
    config_path: str = "config/config.yaml",
    with_eda: bool = False
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Args:
        train_path: Path to the labelled training CSV
        test_path: Path to the examinable CSV
        config_path: Path to configuration file
        with_eda: Whether to run the EDA phase first

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("EXERCISE QUALITY PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    train_df, test_df = _load_inputs(train_path, test_path, config)
    print_data_summary(train_df, label_column=_label_column(config))

    results = {
        'config': config,
        'train_shape': train_df.shape,
        'test_shape': test_df.shape
    }

    if with_eda:
        results['eda'] = run_eda(train_df, config)

    results['cleaning'] = run_cleaning(train_df, test_df, config)
    results['models'] = run_training(results['cleaning'], config)
    results['evaluation'] = run_evaluation(results['models'], results['cleaning'], config)
    results['prediction'] = run_final_prediction_phase(
        results['models'], results['evaluation'], results['cleaning'], test_df, config
    )

    best = results['evaluation']['best_model']
    best_accuracy = results['evaluation']['comparison'].loc[best, 'accuracy']

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Training data: {train_df.shape[0]} rows × {train_df.shape[1]} columns")
    print(f"  • Features used: {len(results['cleaning']['feature_columns'])}")
    print(f"  • Selected model: {best} (holdout accuracy {best_accuracy:.4f})")
    print(f"  • Predictions: {len(results['prediction']['predictions'])}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    train_path: str,
    test_path: str,
    config_path: str = "config/config.yaml"
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (with the phases it depends on).

    Args:
        phase: Phase to run ('eda', 'clean', 'train', 'evaluate', 'predict')
        train_path: Path to the labelled training CSV
        test_path: Path to the examinable CSV
        config_path: Path to configuration file

    Returns:
        Phase result dictionary
    """
    if phase == 'predict':
        return run_full_pipeline(train_path, test_path, config_path)

    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES)}")

    config = load_config(config_path)
    setup_logging(config.get('logging', {}).get('level', 'INFO'))

    train_df, test_df = _load_inputs(train_path, test_path, config)

    if phase == 'eda':
        return run_eda(train_df, config)

    clean_result = run_cleaning(train_df, test_df, config)
    if phase == 'clean':
        return clean_result

    models = run_training(clean_result, config)
    if phase == 'train':
        return {'models': models, 'cleaning': clean_result}

    return run_evaluation(models, clean_result, config)


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Exercise Quality Classifier for wearable sensor data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv --phase eda
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv --eda
        """
    )

    parser.add_argument(
        '--train', '-t',
        type=str,
        default='data/raw/pml-training.csv',
        help='Path to the labelled training CSV file'
    )

    parser.add_argument(
        '--test', '-e',
        type=str,
        default='data/raw/pml-testing.csv',
        help='Path to the examinable CSV file'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--eda',
        action='store_true',
        help='Include the EDA phase when running the full pipeline'
    )

    args = parser.parse_args()

    for label, path in (('Training', args.train), ('Examinable', args.test)):
        if not Path(path).exists():
            print(f"Error: {label} data file not found: {path}")
            print("\nExpected format: CSV with a header row (160 columns)")
            return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        if args.phase == 'all':
            run_full_pipeline(args.train, args.test, args.config, with_eda=args.eda)
        else:
            run_single_phase(args.phase, args.train, args.test, args.config)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
