"""
Test Suite for Model Module
============================

Tests for the three trainers and the ClassificationModel wrapper.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from exercise_quality.preprocessing import clean_pipeline
from exercise_quality.model import (
    ClassificationModel,
    RandomForestModel,
    GradientBoostingModel,
    DecisionTreeModel,
    mtry_grid,
    split_features_label,
    train_random_forest,
    train_gradient_boosting,
    train_decision_tree,
    train_models,
    TRAINERS,
)
from conftest import make_sensor_table, EXPECTED_FEATURES


@pytest.fixture(scope="module")
def cleaned():
    """Cleaned fit / evaluation / examinable tables."""
    return clean_pipeline(
        make_sensor_table(500, seed=0),
        make_sensor_table(20, seed=1, labelled=False),
        seed=12345
    )


@pytest.fixture(scope="module")
def config():
    return {
        "models": {
            "random_state": 7,
            "cv_folds": 3,
            "tune_length": 3,
            "random_forest": {"n_estimators": 25, "n_jobs": 1},
            "gradient_boosting": {"max_depth_grid": [1, 2], "max_iter_grid": [20, 40]},
        }
    }


@pytest.fixture(scope="module")
def forest(cleaned, config):
    return train_random_forest(cleaned['fit'], 'classe', config)


class TestHelpers:
    """Tests for mtry_grid and split_features_label."""

    def test_mtry_grid_evenly_spaced(self):
        """Test candidates run from 2 to the feature count."""
        assert mtry_grid(27, 3) == [2, 14, 27]
        assert mtry_grid(52, 3) == [2, 27, 52]

    def test_mtry_grid_single_candidate(self):
        """Test a single candidate is the square root of the feature count."""
        assert mtry_grid(16, 1) == [4]

    def test_mtry_grid_few_features(self):
        """Test tiny feature counts."""
        assert mtry_grid(2, 3) == [2]
        assert mtry_grid(1, 3) == [1]

    def test_split_features_label(self, cleaned):
        """Test the label is separated from the features."""
        X, y = split_features_label(cleaned['fit'], 'classe')

        assert list(X.columns) == EXPECTED_FEATURES
        assert y.name == 'classe'

    def test_split_missing_label(self, cleaned):
        """Test a table without the label is rejected."""
        with pytest.raises(ValueError, match="Label column"):
            split_features_label(cleaned['examinable'], 'classe')


class TestRandomForest:
    """Tests for the random forest trainer."""

    def test_fitted(self, forest):
        """Test the trainer returns a fitted model."""
        assert isinstance(forest, RandomForestModel)
        assert forest._is_fitted == True
        assert list(forest.classes_) == ['A', 'B', 'C', 'D', 'E']
        assert forest.feature_columns_ == EXPECTED_FEATURES

    def test_categorical_columns_encoded(self, forest):
        """Test the text timestamp is one-hot encoded."""
        assert forest.categorical_columns_ == ['cvtd_timestamp']
        assert forest.training_info['n_encoded_features'] == 27

    def test_tuning_grid(self, forest):
        """Test the mtry search covers the expected candidates."""
        results = forest.tuning_results()

        assert sorted(results['max_features'].astype(int)) == [2, 14, 27]
        assert forest.best_params['max_features'] in (2, 14, 27)
        assert set(results.columns) >= {'max_features', 'mean_accuracy', 'std_accuracy', 'rank'}

    def test_accuracy(self, forest, cleaned):
        """Test well-separated classes are learned."""
        X, y = split_features_label(cleaned['evaluation'], 'classe')

        assert forest.cv_accuracy > 0.95
        assert (forest.predict(X) == y.to_numpy()).mean() > 0.95

    def test_deterministic(self, forest, cleaned, config):
        """Test retraining with the same seed reproduces the model."""
        again = train_random_forest(cleaned['fit'], 'classe', config)
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        assert again.best_params == forest.best_params
        np.testing.assert_array_equal(again.predict(X), forest.predict(X))
        pd.testing.assert_frame_equal(again.tuning_results(), forest.tuning_results())

    def test_feature_importances(self, forest):
        """Test importances cover every encoded feature."""
        importances = forest.get_feature_importances()

        assert len(importances) == 27
        assert importances.is_monotonic_decreasing
        assert importances.sum() == pytest.approx(1.0)

    def test_predict_reordered_columns(self, forest, cleaned):
        """Test columns in another order are realigned."""
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        np.testing.assert_array_equal(forest.predict(X[X.columns[::-1]]), forest.predict(X))

    def test_predict_schema_mismatch(self, forest, cleaned):
        """Test the model refuses tables with other columns."""
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        with pytest.raises(ValueError, match="do not match"):
            forest.predict(X.drop(columns=['roll_belt']))
        with pytest.raises(ValueError, match="do not match"):
            forest.predict(X.assign(extra=1.0))

    def test_save_load(self, forest, cleaned, tmp_path):
        """Test saving and loading a model."""
        path = tmp_path / "models" / "random_forest.joblib"
        forest.save(str(path))
        loaded = ClassificationModel.load(str(path))
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        assert isinstance(loaded, RandomForestModel)
        assert loaded.n_estimators == 25
        assert loaded.best_params == forest.best_params
        np.testing.assert_array_equal(loaded.predict(X), forest.predict(X))


class TestUnfittedModel:
    """Tests for models used before training."""

    def test_predict_before_fit(self, cleaned):
        """Test that predict raises error before fit."""
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        with pytest.raises(ValueError, match="must be trained"):
            RandomForestModel().predict(X)

    def test_save_before_fit(self, tmp_path):
        """Test an untrained model cannot be saved."""
        with pytest.raises(ValueError, match="must be trained"):
            DecisionTreeModel().save(str(tmp_path / "tree.joblib"))

    def test_tuning_results_before_fit(self):
        """Test tuning results need a fitted search."""
        with pytest.raises(ValueError, match="must be trained"):
            GradientBoostingModel().tuning_results()


class TestGradientBoosting:
    """Tests for the gradient boosting trainer."""

    @pytest.fixture(scope="class")
    def boosted(self, cleaned, config):
        return train_gradient_boosting(cleaned['fit'], 'classe', config)

    def test_grid(self, boosted):
        """Test the depth x iterations grid is searched."""
        results = boosted.tuning_results()

        assert len(results) == 4
        assert set(results['max_depth'].astype(int)) == {1, 2}
        assert set(results['max_iter'].astype(int)) == {20, 40}

    def test_default_grid(self):
        """Test the default grid."""
        model = GradientBoostingModel()

        assert model.max_depth_grid == [1, 2, 3]
        assert model.max_iter_grid == [50, 100, 150]

    def test_accuracy(self, boosted, cleaned):
        """Test well-separated classes are learned."""
        X, y = split_features_label(cleaned['evaluation'], 'classe')

        assert (boosted.predict(X) == y.to_numpy()).mean() > 0.9

    def test_no_feature_importances(self, boosted):
        """Test boosted trees expose no impurity importances."""
        assert boosted.get_feature_importances() is None


class TestDecisionTree:
    """Tests for the decision tree trainer."""

    @pytest.fixture(scope="class")
    def tree(self, cleaned, config):
        return train_decision_tree(cleaned['fit'], 'classe', config)

    def test_complexity_grid(self, tree):
        """Test candidates lie on the pruning path, starting unpruned."""
        alphas = tree.tuning_results()['ccp_alpha'].astype(float)

        assert 1 <= len(alphas) <= 3
        assert alphas.min() >= 0.0
        assert tree.best_params['ccp_alpha'] in list(alphas)

    def test_deterministic(self, tree, cleaned, config):
        """Test retraining with the same seed reproduces the tree."""
        again = train_decision_tree(cleaned['fit'], 'classe', config)
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        np.testing.assert_array_equal(again.predict(X), tree.predict(X))


class TestTrainModels:
    """Tests for train_models."""

    def test_registry(self):
        """Test all three trainers are registered."""
        assert list(TRAINERS) == ['random_forest', 'gradient_boosting', 'decision_tree']

    def test_train_selected(self, cleaned, config):
        """Test only the enabled models are trained, in order."""
        cfg = {"models": dict(config["models"], enabled=['decision_tree', 'random_forest'])}
        models = train_models(cleaned['fit'], 'classe', cfg)

        assert list(models) == ['decision_tree', 'random_forest']
        assert isinstance(models['decision_tree'], DecisionTreeModel)

    def test_parallel_matches_sequential(self, cleaned, config):
        """Test independent trainers give the same result in parallel."""
        cfg = {"models": dict(config["models"], enabled=['decision_tree', 'random_forest'])}
        sequential = train_models(cleaned['fit'], 'classe', cfg)
        cfg["models"]["parallel"] = True
        parallel = train_models(cleaned['fit'], 'classe', cfg)
        X, _ = split_features_label(cleaned['evaluation'], 'classe')

        for name in sequential:
            np.testing.assert_array_equal(parallel[name].predict(X), sequential[name].predict(X))

    def test_saves_models(self, cleaned, config, tmp_path):
        """Test models are written to the model directory."""
        cfg = {"models": dict(config["models"], enabled=['decision_tree'])}
        train_models(cleaned['fit'], 'classe', cfg, model_dir=str(tmp_path))

        assert (tmp_path / "decision_tree.joblib").exists()

    def test_unknown_model(self, cleaned, config):
        """Test an unknown model name is rejected."""
        cfg = {"models": dict(config["models"], enabled=['svm'])}

        with pytest.raises(ValueError, match="Unknown model"):
            train_models(cleaned['fit'], 'classe', cfg)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
