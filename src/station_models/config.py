"""
config.py - Run configuration for the station modeling harness
===============================================================
Column names, eligibility thresholds, model hyperparameters and paths shared
by every stage of the pipeline, plus the per-run ``ModelRunConfig`` record.
"""

import os
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DATA_DIR = os.path.join(BASE_DIR, "data", "data_clean")
RESULTS_DIR = os.path.join(BASE_DIR, "results")
MODELS_DIR = os.path.join(BASE_DIR, "models")

# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------
DATE_COL = "Date"
STATION_COL = "Station"
GROUP_COL = "Station_Group"
ID_COLS = [DATE_COL, STATION_COL, GROUP_COL]

TARGETS = ["CAQI", "NO2", "O3", "PM10", "PM2_5"]
STATION_GROUPS = ["traffic", "suburb", "background"]

# Superseded by derived features (Wind_Dir_Cat, Precip_Sum_24, Weekday)
EXCLUDED_FEATURES = ["CAQI_Category", "Is_Weekend", "Precip", "Wind_Dir"]

CATEGORICAL_FEATURES = ["Hour", "Month", "Weekday", "Wind_Dir_Cat"]

TRAFFIC_COLS = ["Traffic_Count", "Heavy_Vehicles"]

# ---------------------------------------------------------------------------
# Splitting & eligibility
# ---------------------------------------------------------------------------
TRAIN_FRACTION = 0.8
MAX_MISSING_FRACTION = 0.5
LAG_STEPS = (3, 6)
MIN_TRAIN_ROWS = 10
MIN_TEST_ROWS = 2

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
RANDOM_STATE = 42
N_SPLITS = 5

FAMILIES = ["linear", "random_forest", "xgboost"]
FAMILY_LABELS = {
    "linear": "Linear Regression",
    "random_forest": "Random Forest",
    "xgboost": "XGBoost",
}

# Single-point grids: cross-validation estimates, it does not tune.
RF_PARAMS = {
    "n_estimators": 200,
    "max_features": 4,
    "min_samples_leaf": 5,
}

XGB_PARAMS = {
    "n_estimators": 200,
    "max_depth": 6,
    "learning_rate": 0.05,
    "subsample": 0.8,
    "colsample_bytree": 0.8,
    "min_child_weight": 3,
    "gamma": 0.0,
}

# ---------------------------------------------------------------------------
# Batch & reporting
# ---------------------------------------------------------------------------
N_WORKERS = 4
TOP_N = 10

# Traffic stations carry vehicle counts, the other two groups do not.
GROUP_BUCKETS = {
    "traffic": ("traffic",),
    "suburb_background": ("suburb", "background"),
}


def mode_label(forecast: bool) -> str:
    return "forecast" if forecast else "prediction"


@dataclass(frozen=True)
class ModelRunConfig:
    """Parameters of one (target, mode, family) training run.

    ``param_grid`` replaces the family's single-point grid when given; every
    value must then be a list of candidates for ``GridSearchCV``.
    """

    target: str
    family: str = "linear"
    forecast: bool = False
    train_fraction: float = TRAIN_FRACTION
    keep_model: bool = False
    param_grid: dict | None = field(default=None, hash=False, compare=False)

    def __post_init__(self):
        if self.target not in TARGETS:
            raise ValueError(f"Unknown target {self.target!r}; expected one of {TARGETS}")
        if self.family not in FAMILIES:
            raise ValueError(f"Unknown model family {self.family!r}; expected one of {FAMILIES}")
        if not 0.0 < self.train_fraction < 1.0:
            raise ValueError(f"train_fraction must lie in (0, 1), got {self.train_fraction}")

    @property
    def mode(self) -> str:
        return mode_label(self.forecast)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.family, self.target, self.mode)
