"""
features.py - Lag augmentation, leakage-aware cleaning and chronological split
==============================================================================
Turns one station table into the train / test partitions every model family
consumes, plus the single categorical encoding step they share.

The split is strictly chronological: the first ``floor(n * train_fraction)``
complete rows train the model, the rest are held out.  Nothing is shuffled.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import (
    CATEGORICAL_FEATURES,
    DATE_COL,
    EXCLUDED_FEATURES,
    ID_COLS,
    LAG_STEPS,
    MAX_MISSING_FRACTION,
    MIN_TEST_ROWS,
    MIN_TRAIN_ROWS,
    TARGETS,
    ModelRunConfig,
)
from .errors import InsufficientRowsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SplitData:
    """Chronological partitions of a cleaned station table."""

    train: pd.DataFrame
    test: pd.DataFrame
    target: str
    feature_cols: list[str]

    @property
    def n_rows(self) -> int:
        return len(self.train) + len(self.test)


@dataclass(frozen=True, eq=False)
class EncodedFeatures:
    """Numeric design matrices plus the raw feature behind each column."""

    X_train: pd.DataFrame
    X_test: pd.DataFrame
    columns: list[str]
    sources: list[str]
    feature_cols: list[str]


# ═══════════════════════════════════════════════════════════════════════════
#  1. LAG AUGMENTATION
# ═══════════════════════════════════════════════════════════════════════════
def lag_column(target: str, steps: int) -> str:
    return f"{target}_Lag_{steps}"


def add_lag_features(df: pd.DataFrame, target: str, lags=LAG_STEPS) -> pd.DataFrame:
    """Append ``<target>_Lag_<k>`` columns shifted by *k* rows.

    Shifts operate on row position, assuming uniform hourly sampling; gaps in
    the timestamps are not detected.  The first *k* rows get NaN.
    """
    out = df.copy()
    for steps in lags:
        out[lag_column(target, steps)] = out[target].shift(steps)
    return out


# ═══════════════════════════════════════════════════════════════════════════
#  2. ELIGIBILITY
# ═══════════════════════════════════════════════════════════════════════════
def missing_fraction(df: pd.DataFrame, target: str) -> float:
    """Fraction of rows with no value for *target* (1.0 if the column is absent)."""
    if target not in df.columns or len(df) == 0:
        return 1.0
    return float(df[target].isna().mean())


def is_eligible(df: pd.DataFrame, target: str) -> bool:
    return missing_fraction(df, target) < MAX_MISSING_FRACTION


# ═══════════════════════════════════════════════════════════════════════════
#  3. FEATURE SELECTION & SPLIT
# ═══════════════════════════════════════════════════════════════════════════
def select_features(df: pd.DataFrame, target: str) -> list[str]:
    """Return the covariates usable for *target*, in table order.

    Drops the identifier columns, the other four targets (collinear outputs,
    not predictors) and the fixed exclusion list.
    """
    other_targets = {t for t in TARGETS if t != target}
    dropped = set(ID_COLS) | other_targets | set(EXCLUDED_FEATURES) | {target}
    return [c for c in df.columns if c not in dropped]


def split_and_clean(df: pd.DataFrame, config: ModelRunConfig) -> SplitData | None:
    """Prepare the train / test partitions for one run.

    Returns ``None`` when the target is ineligible (too many missing values);
    that is normal operation, not an error.  Raises ``InsufficientRowsError``
    when too few complete rows survive the null-row drop.
    """
    target = config.target
    if not is_eligible(df, target):
        logger.info(
            "%s: %.0f%% of values missing, not modeled",
            target, 100 * missing_fraction(df, target),
        )
        return None

    table = add_lag_features(df, target) if config.forecast else df
    feature_cols = select_features(table, target)

    empty = [c for c in feature_cols if table[c].isna().all()]
    if empty:
        logger.debug("Dropping covariates with no values: %s", empty)
        feature_cols = [c for c in feature_cols if c not in empty]
    if not feature_cols:
        raise InsufficientRowsError(0, MIN_TRAIN_ROWS + MIN_TEST_ROWS)

    keep = [c for c in ID_COLS if c in table.columns] + [target] + feature_cols
    cleaned = table[keep].dropna().reset_index(drop=True)

    n_rows = len(cleaned)
    n_train = math.floor(n_rows * config.train_fraction)
    if n_train < MIN_TRAIN_ROWS or n_rows - n_train < MIN_TEST_ROWS:
        raise InsufficientRowsError(n_rows, MIN_TRAIN_ROWS + MIN_TEST_ROWS)

    return SplitData(
        train=cleaned.iloc[:n_train].reset_index(drop=True),
        test=cleaned.iloc[n_train:].reset_index(drop=True),
        target=target,
        feature_cols=feature_cols,
    )


# ═══════════════════════════════════════════════════════════════════════════
#  4. ENCODING
# ═══════════════════════════════════════════════════════════════════════════
def _is_categorical(series: pd.Series) -> bool:
    if series.name in CATEGORICAL_FEATURES:
        return True
    return not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series)


def encode_features(train: pd.DataFrame, test: pd.DataFrame,
                    feature_cols: list[str]) -> EncodedFeatures:
    """Expand categorical covariates into indicator columns.

    Train and test are encoded together so both share one column set.  Each
    categorical feature drops its first (sorted) level; numeric features pass
    through unchanged.  Column order follows *feature_cols*.
    """
    full = pd.concat([train[feature_cols], test[feature_cols]], ignore_index=True)

    blocks, sources = [], []
    for col in feature_cols:
        series = full[col]
        if _is_categorical(series):
            block = pd.get_dummies(series.astype(str), prefix=col, drop_first=True, dtype=float)
        else:
            block = series.astype(float).to_frame()
        blocks.append(block)
        sources.extend([col] * block.shape[1])

    matrix = pd.concat(blocks, axis=1) if blocks else pd.DataFrame(index=full.index)
    n_train = len(train)
    return EncodedFeatures(
        X_train=matrix.iloc[:n_train].reset_index(drop=True),
        X_test=matrix.iloc[n_train:].reset_index(drop=True),
        columns=list(matrix.columns),
        sources=sources,
        feature_cols=list(feature_cols),
    )


def prediction_frame(dates: pd.Series, actual, predicted) -> pd.DataFrame:
    """Timestamp / actual / predicted table for one partition."""
    return pd.DataFrame({
        DATE_COL: dates.reset_index(drop=True),
        "Actual": np.asarray(actual, dtype=float),
        "Predicted": np.asarray(predicted, dtype=float),
    })
