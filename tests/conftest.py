"""
Shared fixtures: small synthetic tables shaped like the sensor dataset.

Columns mirror the published files: a row index, the subject name,
timestamps, a rarely-set window flag, sparse summary statistics that are
populated only on window rows, and class-dependent sensor readings.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

CLASSES = ["A", "B", "C", "D", "E"]
SUBJECTS = ["adelmo", "carlitos", "charles", "eurico", "jeremy", "pedro"]
TIMESTAMPS = [f"{day:02d}/12/2011 14:{minute:02d}" for day in (2, 5) for minute in range(10)]

# Columns expected to survive cleaning, in table order
EXPECTED_FEATURES = [
    "raw_timestamp_part_1", "cvtd_timestamp", "num_window",
    "roll_belt", "pitch_belt", "total_accel_belt", "gyros_arm_x", "accel_forearm_z",
]


def make_sensor_table(n_rows: int = 500, seed: int = 0, labelled: bool = True) -> pd.DataFrame:
    """Build a synthetic table with the layout of the training / examinable files."""
    rng = np.random.RandomState(seed)

    labels = np.array(CLASSES)[np.arange(n_rows) % len(CLASSES)]
    rng.shuffle(labels)
    offset = np.array([CLASSES.index(c) for c in labels]) * 10.0

    window_rows = np.arange(n_rows) % 50 == 0
    sparse = np.full(n_rows, np.nan)
    sparse[window_rows] = rng.randn(window_rows.sum())

    df = pd.DataFrame({
        "Unnamed: 0": np.arange(1, n_rows + 1),
        "user_name": rng.choice(SUBJECTS, n_rows),
        "raw_timestamp_part_1": 1322489605 + rng.randint(0, 10 ** 6, n_rows),
        "cvtd_timestamp": rng.choice(TIMESTAMPS, n_rows),
        "new_window": np.where(window_rows, "yes", "no"),
        "num_window": rng.randint(1, 865, n_rows),
        "roll_belt": offset + rng.randn(n_rows),
        "kurtosis_roll_belt": sparse,
        "pitch_belt": -offset + rng.randn(n_rows) * 2,
        "max_roll_belt": sparse.copy(),
        "total_accel_belt": offset * 0.5 + rng.randn(n_rows),
        "gyros_arm_x": rng.randn(n_rows),
        "accel_forearm_z": offset * 2 + rng.randn(n_rows) * 3,
    })

    if labelled:
        df["classe"] = labels
    else:
        df["problem_id"] = np.arange(1, n_rows + 1)

    return df


@pytest.fixture
def train_table():
    """Labelled table with 500 rows."""
    return make_sensor_table(500, seed=0, labelled=True)


@pytest.fixture
def test_table():
    """Examinable table with 20 rows and a problem_id column."""
    return make_sensor_table(20, seed=1, labelled=False)


@pytest.fixture
def fast_config():
    """Small model settings so the trainers run in seconds."""
    return {
        "models": {
            "enabled": ["random_forest", "gradient_boosting", "decision_tree"],
            "parallel": False,
            "random_state": 7,
            "cv_folds": 3,
            "tune_length": 3,
            "random_forest": {"n_estimators": 25, "n_jobs": 1},
            "gradient_boosting": {"max_depth_grid": [1, 2], "max_iter_grid": [20, 40]},
            "decision_tree": {},
        }
    }
