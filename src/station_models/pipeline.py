"""
pipeline.py - Per-station training runs and the batch aggregator
================================================================
``train_station`` runs split -> encode -> fit -> evaluate for one
(station, target, mode, family).  It never raises for a per-station
problem: ineligible targets give an all-null record, failures a record with
``status="failed"`` and the error message.

``run_batch`` fans the runs out over a bounded process pool (the tree
libraries are not assumed thread-safe) and gathers them into a mapping
keyed by (family, target, mode, station).
"""

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed

import pandas as pd

from .config import (
    DATE_COL,
    FAMILIES,
    GROUP_COL,
    N_WORKERS,
    STATION_COL,
    TARGETS,
    TRAIN_FRACTION,
    ModelRunConfig,
)
from .data import station_identity, validate_station_frame
from .errors import StationModelError
from .features import encode_features, prediction_frame, split_and_clean
from .metrics import evaluate
from .models import STRATEGIES
from .results import STATUS_FAILED, STATUS_INELIGIBLE, ModelResult, null_result

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  1. SINGLE RUN
# ═══════════════════════════════════════════════════════════════════════════
def _identity(df: pd.DataFrame, station: str | None) -> tuple[str, str | None]:
    group = None
    if GROUP_COL in df.columns and df[GROUP_COL].notna().any():
        group = str(df[GROUP_COL].dropna().iloc[0])
    if station is None and STATION_COL in df.columns and df[STATION_COL].notna().any():
        station = str(df[STATION_COL].dropna().iloc[0])
    return station or "unknown", group


def _fit_station(df: pd.DataFrame, config: ModelRunConfig, station: str | None = None) -> ModelResult:
    validate_station_frame(df)
    name, group = station_identity(df)
    station = name if station is None else station

    split = split_and_clean(df, config)
    if split is None:
        return null_result(station, group, config, status=STATUS_INELIGIBLE)

    encoded = encode_features(split.train, split.test, split.feature_cols)
    y_train = split.train[config.target]
    y_test = split.test[config.target]

    outcome = STRATEGIES[config.family](encoded, y_train, config)

    train_scores = evaluate(y_train, outcome.train_pred)
    test_scores = evaluate(y_test, outcome.test_pred)

    return ModelResult(
        station=station,
        station_group=group,
        target=config.target,
        family=config.family,
        mode=config.mode,
        model=outcome.model if config.keep_model else None,
        rmse_train=train_scores["RMSE"],
        mae_train=train_scores["MAE"],
        rmse_test=test_scores["RMSE"],
        mae_test=test_scores["MAE"],
        r2_test=test_scores["R2"],
        mape_test=test_scores["MAPE"],
        cv_rmse=outcome.cv_rmse,
        n_train=len(split.train),
        n_test=len(split.test),
        train_predictions=prediction_frame(split.train[DATE_COL], y_train, outcome.train_pred),
        test_predictions=prediction_frame(split.test[DATE_COL], y_test, outcome.test_pred),
        relevance=outcome.relevance,
    )


def train_station(df: pd.DataFrame, config: ModelRunConfig, station: str | None = None) -> ModelResult:
    """Train and evaluate one model family on one station.

    Always returns a ``ModelResult``; see the module docstring.  *station*,
    when given, names the record instead of the frame's ``Station`` column,
    so batch results are labelled by their dataset key.
    """
    try:
        result = _fit_station(df, config, station)
    except StationModelError as exc:
        station, group = _identity(df, station)
        logger.warning("[%s | %s | %s | %s] %s", station, config.target, config.mode, config.family, exc)
        return null_result(station, group, config, status=STATUS_FAILED, error=str(exc))
    except Exception as exc:
        station, group = _identity(df, station)
        logger.exception("[%s | %s | %s | %s] unexpected failure",
                         station, config.target, config.mode, config.family)
        return null_result(station, group, config, status=STATUS_FAILED,
                           error=f"{type(exc).__name__}: {exc}")

    if result.ok:
        print(f"    [{result.station} | {result.target} | {result.mode}]  "
              f"{config.family:13s}  RMSE → train {result.rmse_train:.3f}  test {result.rmse_test:.3f}")
    return result


# ═══════════════════════════════════════════════════════════════════════════
#  2. BATCH
# ═══════════════════════════════════════════════════════════════════════════
def build_configs(targets=TARGETS, families=FAMILIES, modes=(False, True),
                  train_fraction: float = TRAIN_FRACTION,
                  keep_model: bool = False) -> list[ModelRunConfig]:
    """Every (family, target, mode) combination of one batch."""
    return [
        ModelRunConfig(target=target, family=family, forecast=forecast,
                       train_fraction=train_fraction, keep_model=keep_model)
        for family in families
        for target in targets
        for forecast in modes
    ]


def run_batch(datasets: dict[str, pd.DataFrame], configs: list[ModelRunConfig] | None = None,
              n_workers: int = N_WORKERS) -> dict[tuple, ModelResult]:
    """Run every config on every station and gather the results.

    Returns {(family, target, mode, station): ModelResult} with exactly one
    entry per combination.  A task whose worker dies is recorded as failed;
    it never aborts the batch.  ``n_workers <= 1`` runs in-process.
    """
    configs = build_configs() if configs is None else configs
    tasks = [(station, config) for config in configs for station in datasets]
    results: dict[tuple, ModelResult] = {}

    if n_workers <= 1:
        for station, config in tasks:
            result = train_station(datasets[station], config, station=station)
            results[(config.family, config.target, config.mode, station)] = result
        return dict(sorted(results.items()))

    with ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = {
            executor.submit(train_station, datasets[station], config, station): (station, config)
            for station, config in tasks
        }
        for future in as_completed(futures):
            station, config = futures[future]
            key = (config.family, config.target, config.mode, station)
            try:
                results[key] = future.result()
            except Exception as exc:
                logger.error("[%s | %s | %s | %s] worker failed: %s",
                             station, config.target, config.mode, config.family, exc)
                _, group = _identity(datasets[station], station)
                results[key] = null_result(station, group, config, status=STATUS_FAILED,
                                           error=f"{type(exc).__name__}: {exc}")

    return dict(sorted(results.items()))


def count_status(results: dict[tuple, ModelResult]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for r in results.values():
        counts[r.status] = counts.get(r.status, 0) + 1
    return counts

