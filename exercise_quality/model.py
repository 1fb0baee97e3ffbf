"""
Model Training Module
=====================

Trains the three candidate classifiers on the cleaned fit subset.

Models:
    - Random forest: cross-validated search over features per split (mtry)
    - Gradient-boosted trees: default depth / iteration grid
    - Decision tree: complexity parameter chosen along the pruning path

Features:
    - Categorical features one-hot encoded inside each model pipeline
    - Stratified k-fold grid search on the joblib worker pool
    - Model persistence (save/load)
    - Training progress logging
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple, Callable
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from joblib import Parallel, delayed
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier, HistGradientBoostingClassifier
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder
from sklearn.tree import DecisionTreeClassifier

logger = logging.getLogger(__name__)

DEFAULT_RANDOM_STATE = 12345


def split_features_label(df: pd.DataFrame, label_column: str) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate a cleaned table into features and labels."""
    if label_column not in df.columns:
        raise ValueError(f"Label column '{label_column}' not found in table")
    return df.drop(columns=[label_column]), df[label_column]


def mtry_grid(n_features: int, tune_length: int = 3) -> List[int]:
    """
    Candidate numbers of features considered per split.

    Evenly spaced from 2 up to `n_features`; a single candidate is the
    square root of the feature count.
    """
    if n_features <= 2:
        return [max(1, n_features)]
    if tune_length <= 1:
        return [max(1, int(np.floor(np.sqrt(n_features))))]
    values = np.floor(np.linspace(2, n_features, tune_length)).astype(int)
    return sorted(set(int(v) for v in values))


def _build_encoder(categorical_columns: List[str]) -> ColumnTransformer:
    return ColumnTransformer(
        [("categorical", OneHotEncoder(handle_unknown="ignore", sparse_output=False), categorical_columns)],
        remainder="passthrough"
    )


class ClassificationModel:
    """
    Base class for the tuned classifiers.

    Wraps a scikit-learn Pipeline (optional one-hot encoding + classifier)
    fitted through GridSearchCV. The fitted model is bound to the feature
    columns it was trained on.
    """

    name = "classifier"
    tuning_parameter: Optional[str] = None

    def __init__(
        self,
        cv_folds: int = 5,
        tune_length: int = 3,
        random_state: int = DEFAULT_RANDOM_STATE,
        n_jobs: Optional[int] = None
    ):
        """
        Initialize the model.

        Args:
            cv_folds: Number of stratified cross-validation folds
            tune_length: Number of candidate values for the tuning parameter
            random_state: Random seed for folds and estimators
            n_jobs: Worker count for the cross-validation search (-1 for all cores)
        """
        self.cv_folds = cv_folds
        self.tune_length = tune_length
        self.random_state = random_state
        self.n_jobs = n_jobs

        self.search: Optional[GridSearchCV] = None
        self.feature_columns_: Optional[List[str]] = None
        self.categorical_columns_: List[str] = []
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def _create_base_estimator(self):
        raise NotImplementedError

    def _param_grid(self, X_encoded: np.ndarray, y: pd.Series) -> Dict[str, List[Any]]:
        raise NotImplementedError

    def _hyperparameters(self) -> Dict[str, Any]:
        return {
            'cv_folds': self.cv_folds,
            'tune_length': self.tune_length,
            'random_state': self.random_state,
            'n_jobs': self.n_jobs
        }

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ClassificationModel':
        """
        Tune and train the model.

        Args:
            X: Cleaned feature table
            y: Class labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info(f"TRAINING {self.name.upper()}")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, classes={sorted(pd.unique(y))}")

        self.feature_columns_ = list(X.columns)
        self.categorical_columns_ = X.select_dtypes(exclude=[np.number]).columns.tolist()

        steps = []
        if self.categorical_columns_:
            logger.info(f"One-hot encoding categorical columns: {self.categorical_columns_}")
            X_encoded = _build_encoder(self.categorical_columns_).fit_transform(X)
            steps.append(("encode", _build_encoder(self.categorical_columns_)))
        else:
            X_encoded = X.to_numpy()
        steps.append(("classifier", self._create_base_estimator()))

        grid = self._param_grid(X_encoded, y)
        logger.info(f"Tuning grid: {grid}")

        cv = StratifiedKFold(n_splits=self.cv_folds, shuffle=True, random_state=self.random_state)
        self.search = GridSearchCV(
            Pipeline(steps),
            {f"classifier__{k}": v for k, v in grid.items()},
            cv=cv,
            scoring="accuracy",
            n_jobs=self.n_jobs,
            refit=True
        )

        logger.info(f"Running {self.cv_folds}-fold cross-validation...")
        self.search.fit(X, y)

        self.classes_ = self.search.best_estimator_.classes_

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'n_encoded_features': int(X_encoded.shape[1]),
            'trained_at': end_time.isoformat(),
            'best_params': self.best_params,
            'cv_accuracy': self.cv_accuracy,
            'hyperparameters': self._hyperparameters()
        }

        self._is_fitted = True

        logger.info(f"Best parameters: {self.best_params}")
        logger.info(f"Cross-validated accuracy: {self.cv_accuracy:.4f}")
        logger.info(f"{self.name} trained in {training_duration:.2f} seconds")

        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Model must be trained before use. Call fit() first.")

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Table with exactly the training feature columns

        Returns:
            Array of predicted labels
        """
        self._check_fitted()

        if list(X.columns) != self.feature_columns_:
            missing = [c for c in self.feature_columns_ if c not in X.columns]
            extra = [c for c in X.columns if c not in self.feature_columns_]
            if missing or extra:
                raise ValueError(
                    f"Feature columns do not match training schema "
                    f"(missing: {missing}, unexpected: {extra})"
                )
            X = X[self.feature_columns_]

        return self.search.predict(X)

    @property
    def best_params(self) -> Dict[str, Any]:
        self._check_fitted_search()
        return {k.replace("classifier__", ""): v for k, v in self.search.best_params_.items()}

    @property
    def cv_accuracy(self) -> float:
        self._check_fitted_search()
        return float(self.search.best_score_)

    def _check_fitted_search(self) -> None:
        if self.search is None or not hasattr(self.search, "best_params_"):
            raise ValueError("Model must be trained first.")

    def tuning_results(self) -> pd.DataFrame:
        """
        Cross-validated accuracy for every candidate of the tuning grid.

        Returns:
            DataFrame with one column per tuned parameter plus
            'mean_accuracy', 'std_accuracy' and 'rank'
        """
        self._check_fitted_search()
        cv_results = pd.DataFrame(self.search.cv_results_)

        param_cols = [c for c in cv_results.columns if c.startswith("param_")]
        results = cv_results[param_cols].copy()
        results.columns = [c.replace("param_classifier__", "") for c in param_cols]
        results['mean_accuracy'] = cv_results['mean_test_score'].astype(float)
        results['std_accuracy'] = cv_results['std_test_score'].astype(float)
        results['rank'] = cv_results['rank_test_score'].astype(int)
        return results

    def get_feature_importances(self) -> Optional[pd.Series]:
        """
        Impurity-based feature importances of the refitted estimator.

        Returns:
            Series indexed by encoded feature name, sorted descending, or
            None when the estimator does not expose importances
        """
        self._check_fitted()
        pipeline = self.search.best_estimator_
        estimator = pipeline.named_steps['classifier']

        if not hasattr(estimator, 'feature_importances_'):
            return None

        if 'encode' in pipeline.named_steps:
            names = pipeline.named_steps['encode'].get_feature_names_out()
        else:
            names = self.feature_columns_

        return pd.Series(estimator.feature_importances_, index=names).sort_values(ascending=False)

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        self._check_fitted()

        state = {
            'class': type(self).__name__,
            'search': self.search,
            'hyperparameters': self._hyperparameters(),
            'feature_columns_': self.feature_columns_,
            'categorical_columns_': self.categorical_columns_,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ClassificationModel':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded model instance of the saved subclass
        """
        state = joblib.load(filepath)

        model_cls = MODEL_CLASSES.get(state['class'], cls)
        model = model_cls(**state['hyperparameters'])
        model.search = state['search']
        model.feature_columns_ = state['feature_columns_']
        model.categorical_columns_ = state['categorical_columns_']
        model.classes_ = state['classes_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


class RandomForestModel(ClassificationModel):
    """Random forest tuned over the number of features considered per split."""

    name = "random_forest"
    tuning_parameter = "max_features"

    def __init__(self, n_estimators: int = 100, **kwargs):
        super().__init__(**kwargs)
        self.n_estimators = n_estimators

    def _create_base_estimator(self) -> RandomForestClassifier:
        return RandomForestClassifier(
            n_estimators=self.n_estimators,
            random_state=self.random_state
        )

    def _param_grid(self, X_encoded, y):
        return {'max_features': mtry_grid(X_encoded.shape[1], self.tune_length)}

    def _hyperparameters(self):
        params = super()._hyperparameters()
        params['n_estimators'] = self.n_estimators
        return params


class GradientBoostingModel(ClassificationModel):
    """Histogram gradient-boosted trees over a depth x iterations grid."""

    name = "gradient_boosting"
    tuning_parameter = "max_iter"

    def __init__(
        self,
        max_depth_grid: Optional[List[int]] = None,
        max_iter_grid: Optional[List[int]] = None,
        learning_rate: float = 0.1,
        min_samples_leaf: int = 10,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.max_depth_grid = list(max_depth_grid or [1, 2, 3])
        self.max_iter_grid = list(max_iter_grid or [50, 100, 150])
        self.learning_rate = learning_rate
        self.min_samples_leaf = min_samples_leaf

    def _create_base_estimator(self) -> HistGradientBoostingClassifier:
        return HistGradientBoostingClassifier(
            learning_rate=self.learning_rate,
            min_samples_leaf=self.min_samples_leaf,
            early_stopping=False,
            random_state=self.random_state
        )

    def _param_grid(self, X_encoded, y):
        return {'max_depth': self.max_depth_grid, 'max_iter': self.max_iter_grid}

    def _hyperparameters(self):
        params = super()._hyperparameters()
        params.update({
            'max_depth_grid': self.max_depth_grid,
            'max_iter_grid': self.max_iter_grid,
            'learning_rate': self.learning_rate,
            'min_samples_leaf': self.min_samples_leaf
        })
        return params


class DecisionTreeModel(ClassificationModel):
    """Single decision tree; ccp_alpha chosen along the pruning path."""

    name = "decision_tree"
    tuning_parameter = "ccp_alpha"

    def _create_base_estimator(self) -> DecisionTreeClassifier:
        return DecisionTreeClassifier(random_state=self.random_state)

    def _param_grid(self, X_encoded, y):
        path = self._create_base_estimator().cost_complexity_pruning_path(X_encoded, y)
        # The last alpha prunes the tree back to its root
        alphas = np.unique(path.ccp_alphas[:-1])
        if len(alphas) == 0:
            return {'ccp_alpha': [0.0]}
        grid = np.unique(np.linspace(alphas.min(), alphas.max(), max(1, self.tune_length)))
        return {'ccp_alpha': [float(a) for a in grid]}


MODEL_CLASSES = {
    'RandomForestModel': RandomForestModel,
    'GradientBoostingModel': GradientBoostingModel,
    'DecisionTreeModel': DecisionTreeModel
}


def _common_settings(config: Dict[str, Any], model_name: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    models_config = config.get('models', {})
    model_config = models_config.get(model_name, {}) or {}
    common = {
        'cv_folds': model_config.get('cv_folds', models_config.get('cv_folds', 5)),
        'tune_length': model_config.get('tune_length', models_config.get('tune_length', 3)),
        'random_state': models_config.get('random_state', DEFAULT_RANDOM_STATE),
        'n_jobs': model_config.get('n_jobs')
    }
    return common, model_config


def _fit_and_save(
    model: ClassificationModel,
    fit_df: pd.DataFrame,
    label_column: str,
    save_path: Optional[str]
) -> ClassificationModel:
    X, y = split_features_label(fit_df, label_column)
    model.fit(X, y)
    if save_path:
        model.save(save_path)
    return model


def train_random_forest(
    fit_df: pd.DataFrame,
    label_column: str,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> RandomForestModel:
    """
    Train the random forest with k-fold cross-validated mtry selection.

    Args:
        fit_df: Cleaned fit subset including the label column
        label_column: Name of the class label column
        config: Configuration dictionary
        save_path: Path to save the trained model (optional)

    Returns:
        Trained RandomForestModel
    """
    common, model_config = _common_settings(config, 'random_forest')
    common['n_jobs'] = model_config.get('n_jobs', -1)
    model = RandomForestModel(n_estimators=model_config.get('n_estimators', 100), **common)
    return _fit_and_save(model, fit_df, label_column, save_path)


def train_gradient_boosting(
    fit_df: pd.DataFrame,
    label_column: str,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> GradientBoostingModel:
    """
    Train gradient-boosted trees over the default search grid.

    Args:
        fit_df: Cleaned fit subset including the label column
        label_column: Name of the class label column
        config: Configuration dictionary
        save_path: Path to save the trained model (optional)

    Returns:
        Trained GradientBoostingModel
    """
    common, model_config = _common_settings(config, 'gradient_boosting')
    model = GradientBoostingModel(
        max_depth_grid=model_config.get('max_depth_grid'),
        max_iter_grid=model_config.get('max_iter_grid'),
        learning_rate=model_config.get('learning_rate', 0.1),
        min_samples_leaf=model_config.get('min_samples_leaf', 10),
        **common
    )
    return _fit_and_save(model, fit_df, label_column, save_path)


def train_decision_tree(
    fit_df: pd.DataFrame,
    label_column: str,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> DecisionTreeModel:
    """
    Train a single decision tree with default complexity selection.

    Args:
        fit_df: Cleaned fit subset including the label column
        label_column: Name of the class label column
        config: Configuration dictionary
        save_path: Path to save the trained model (optional)

    Returns:
        Trained DecisionTreeModel
    """
    common, _ = _common_settings(config, 'decision_tree')
    model = DecisionTreeModel(**common)
    return _fit_and_save(model, fit_df, label_column, save_path)


TRAINERS: Dict[str, Callable[..., ClassificationModel]] = {
    'random_forest': train_random_forest,
    'gradient_boosting': train_gradient_boosting,
    'decision_tree': train_decision_tree
}


def train_models(
    fit_df: pd.DataFrame,
    label_column: str,
    config: Dict[str, Any],
    model_dir: Optional[str] = None
) -> Dict[str, ClassificationModel]:
    """
    Train every enabled model.

    The trainers share no state, so with `models.parallel` they run as
    independent joblib jobs.

    Args:
        fit_df: Cleaned fit subset including the label column
        label_column: Name of the class label column
        config: Configuration dictionary
        model_dir: Directory to save trained models (optional)

    Returns:
        Dictionary of model name to trained model, in training order
    """
    models_config = config.get('models', {})
    enabled = models_config.get('enabled', list(TRAINERS))

    unknown = [name for name in enabled if name not in TRAINERS]
    if unknown:
        raise ValueError(f"Unknown model(s): {unknown}. Choose from: {list(TRAINERS)}")

    def save_path(name: str) -> Optional[str]:
        return str(Path(model_dir) / f"{name}.joblib") if model_dir else None

    if models_config.get('parallel', False) and len(enabled) > 1:
        logger.info(f"Training {len(enabled)} models in parallel: {enabled}")
        fitted = Parallel(n_jobs=len(enabled))(
            delayed(TRAINERS[name])(fit_df, label_column, config, save_path(name))
            for name in enabled
        )
    else:
        fitted = [
            TRAINERS[name](fit_df, label_column, config, save_path(name))
            for name in enabled
        ]

    return dict(zip(enabled, fitted))


def print_model_summary(models: Dict[str, ClassificationModel]) -> None:
    """
    Print a summary of the trained models.

    Args:
        models: Dictionary of trained models
    """
    print("\n" + "=" * 60)
    print("MODEL SUMMARY")
    print("=" * 60)
    print(f"{'Model':<20} {'CV Accuracy':<14} {'Duration (s)':<14} Best Parameters")
    print("-" * 60)

    for name, model in models.items():
        info = model.training_info
        print(
            f"{name:<20} {info.get('cv_accuracy', float('nan')):<14.4f} "
            f"{info.get('training_duration_seconds', float('nan')):<14.2f} {info.get('best_params', {})}"
        )

    print("=" * 60 + "\n")
