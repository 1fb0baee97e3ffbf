"""
Test Suite for Prediction Module
=================================

Tests for examinable predictions, the CSV export and the answer files.
"""

import pytest
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from exercise_quality.preprocessing import clean_pipeline
from exercise_quality.model import train_decision_tree
from exercise_quality.prediction import (
    predict_examinable,
    export_predictions,
    write_answer_files,
    run_final_prediction,
)
from conftest import make_sensor_table, CLASSES


@pytest.fixture(scope="module")
def cleaned():
    return clean_pipeline(
        make_sensor_table(500, seed=0),
        make_sensor_table(20, seed=1, labelled=False),
        seed=12345
    )


@pytest.fixture(scope="module")
def model(cleaned):
    config = {"models": {"random_state": 7, "cv_folds": 3}}
    return train_decision_tree(cleaned['fit'], 'classe', config)


class TestPredictExaminable:
    """Tests for predict_examinable."""

    def test_one_prediction_per_row(self, model, cleaned):
        """Test every examinable row gets a known class."""
        raw = make_sensor_table(20, seed=1, labelled=False)
        predictions = predict_examinable(model, cleaned['examinable'], identifiers=raw['problem_id'])

        assert list(predictions.columns) == ['Problem_ID', 'Prediction']
        assert list(predictions['Problem_ID']) == list(range(1, 21))
        assert set(predictions['Prediction']) <= set(CLASSES)

    def test_identifiers_from_raw_table(self, model):
        """Test the id column is used and ignored as a feature."""
        raw = make_sensor_table(20, seed=1, labelled=False)
        raw['problem_id'] = range(101, 121)
        predictions = predict_examinable(model, raw)

        assert list(predictions['Problem_ID']) == list(range(101, 121))

    def test_identifiers_default_to_position(self, model, cleaned):
        """Test rows are numbered from 1 without an id column."""
        predictions = predict_examinable(model, cleaned['examinable'])

        assert list(predictions['Problem_ID']) == list(range(1, 21))

    def test_order_preserved(self, model, cleaned):
        """Test predictions follow the input row order."""
        forward = predict_examinable(model, cleaned['examinable'])
        reverse = predict_examinable(model, cleaned['examinable'].iloc[::-1])

        assert list(reverse['Prediction']) == list(forward['Prediction'])[::-1]

    def test_identifier_length_mismatch(self, model, cleaned):
        """Test misaligned identifiers are rejected."""
        with pytest.raises(ValueError, match="identifiers"):
            predict_examinable(model, cleaned['examinable'], identifiers=pd.Series([1, 2, 3]))

    def test_missing_feature(self, model, cleaned):
        """Test a table lacking a feature column is rejected."""
        with pytest.raises(ValueError, match="do not match"):
            predict_examinable(model, cleaned['examinable'].drop(columns=['roll_belt']))


class TestOutputFiles:
    """Tests for export_predictions and write_answer_files."""

    @pytest.fixture
    def predictions(self):
        return pd.DataFrame({'Problem_ID': [1, 2, 3], 'Prediction': ['B', 'A', 'E']})

    def test_export_without_timestamp(self, predictions, tmp_path):
        """Test the CSV holds the prediction table."""
        path = export_predictions(predictions, str(tmp_path), include_timestamp=False)

        assert Path(path).name == "predictions.csv"
        pd.testing.assert_frame_equal(pd.read_csv(path), predictions)

    def test_export_with_timestamp(self, predictions, tmp_path):
        """Test timestamped file names."""
        path = export_predictions(predictions, str(tmp_path / "out"))

        assert Path(path).name.startswith("predictions_")
        assert Path(path).exists()

    def test_answer_files(self, predictions, tmp_path):
        """Test one file per problem holding only the class."""
        paths = write_answer_files(predictions, str(tmp_path / "answers"))

        assert len(paths) == 3
        assert (tmp_path / "answers" / "problem_id_1.txt").read_text() == "B"
        assert (tmp_path / "answers" / "problem_id_3.txt").read_text() == "E"


class TestRunFinalPrediction:
    """Tests for run_final_prediction."""

    def test_workflow(self, model, cleaned, tmp_path):
        """Test predictions, CSV and answer files are produced together."""
        result = run_final_prediction(
            model,
            cleaned['examinable'],
            output_dir=str(tmp_path / "predictions"),
            answer_files_dir=str(tmp_path / "answers")
        )

        assert result['model_name'] == model.name
        assert len(result['predictions']) == 20
        assert Path(result['csv_path']).exists()
        assert len(result['answer_files']) == 20

    def test_skip_outputs(self, model, cleaned):
        """Test file outputs are optional."""
        result = run_final_prediction(model, cleaned['examinable'], output_dir=None)

        assert result['csv_path'] is None
        assert result['answer_files'] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
