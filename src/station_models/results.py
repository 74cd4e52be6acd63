"""
results.py - Result records, tables and persistence
===================================================
One ``ModelResult`` per (station, target, mode, family).  Ineligible and
failed runs keep their row, with null metrics, so downstream completeness
checks always see the full grid.
"""

import logging
import os
from dataclasses import dataclass

import joblib
import numpy as np
import pandas as pd

from .config import FAMILIES, FAMILY_LABELS

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_INELIGIBLE = "ineligible"
STATUS_FAILED = "failed"

RESULTS_FILE = "model_results.joblib"
TABLE_FILE = "all_model_results.csv"
RELEVANCE_FILE = "feature_relevance.csv"
PIVOT_FILE = "rmse_comparison_pivot.csv"
FAMILY_FILE = "{family}_results.joblib"
RUNS_DIR = "runs"

TABLE_COLUMNS = [
    "Station", "Station_Group", "Target", "Mode", "Model", "Status", "N_Train", "N_Test",
    "RMSE_Train", "MAE_Train", "RMSE_Test", "MAE_Test", "R2_Test", "MAPE_Test", "CV_RMSE", "Error",
]


@dataclass(frozen=True, eq=False)
class ModelResult:
    station: str
    station_group: str
    target: str
    family: str
    mode: str
    status: str = STATUS_OK
    model: object = None
    rmse_train: float = np.nan
    mae_train: float = np.nan
    rmse_test: float = np.nan
    mae_test: float = np.nan
    r2_test: float = np.nan
    mape_test: float = np.nan
    cv_rmse: float = np.nan
    n_train: int = 0
    n_test: int = 0
    train_predictions: pd.DataFrame | None = None
    test_predictions: pd.DataFrame | None = None
    relevance: pd.DataFrame | None = None
    error: str | None = None

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.family, self.target, self.mode, self.station)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def null_result(station, station_group, config, status=STATUS_INELIGIBLE, error=None) -> ModelResult:
    """All-null record for an ineligible or failed run."""
    return ModelResult(
        station=station,
        station_group=station_group,
        target=config.target,
        family=config.family,
        mode=config.mode,
        status=status,
        error=error,
    )


# ═══════════════════════════════════════════════════════════════════════════
#  1. TABLES
# ═══════════════════════════════════════════════════════════════════════════
def _row(result: ModelResult) -> dict:
    return {
        "Station": result.station,
        "Station_Group": result.station_group,
        "Target": result.target,
        "Mode": result.mode,
        "Model": result.family,
        "Status": result.status,
        "N_Train": result.n_train,
        "N_Test": result.n_test,
        "RMSE_Train": result.rmse_train,
        "MAE_Train": result.mae_train,
        "RMSE_Test": result.rmse_test,
        "MAE_Test": result.mae_test,
        "R2_Test": result.r2_test,
        "MAPE_Test": result.mape_test,
        "CV_RMSE": result.cv_rmse,
        "Error": result.error,
    }


def _ordered(results) -> list[ModelResult]:
    if isinstance(results, dict):
        results = results.values()
    return sorted(results, key=lambda r: r.key)


def results_table(results, with_relevance: bool = False) -> pd.DataFrame:
    """Flat metrics table, one row per result.

    With *with_relevance*, a ``Feature_Relevance`` column carries each run's
    relevance table (``None`` for ineligible or failed runs).
    """
    ordered = _ordered(results)
    df = pd.DataFrame([_row(r) for r in ordered], columns=TABLE_COLUMNS)
    if with_relevance:
        df["Feature_Relevance"] = [r.relevance for r in ordered]
    return df


def family_tables(results) -> dict[str, pd.DataFrame]:
    """Per-family result tables including the relevance column."""
    table = results_table(results, with_relevance=True)
    return {
        family: table[table["Model"] == family].reset_index(drop=True)
        for family in FAMILIES
        if (table["Model"] == family).any()
    }


def run_tables(results) -> dict[tuple[str, str, str], pd.DataFrame]:
    """One table per (family, target, mode), stations in sorted order."""
    grouped: dict[tuple[str, str, str], list[ModelResult]] = {}
    for r in _ordered(results):
        grouped.setdefault(r.key[:3], []).append(r)
    return {run: results_table(rows) for run, rows in grouped.items()}


def relevance_table(results) -> pd.DataFrame:
    """Long-form relevance rows for every successful run."""
    frames = []
    for r in _ordered(results):
        if r.relevance is None or r.relevance.empty:
            continue
        rel = r.relevance.copy()
        rel.insert(0, "Model", r.family)
        rel.insert(0, "Mode", r.mode)
        rel.insert(0, "Target", r.target)
        rel.insert(0, "Station_Group", r.station_group)
        rel.insert(0, "Station", r.station)
        rel["Rank"] = np.arange(1, len(rel) + 1)
        frames.append(rel)
    if not frames:
        return pd.DataFrame(columns=["Station", "Station_Group", "Target", "Mode", "Model",
                                     "Feature", "Importance", "Rank"])
    return pd.concat(frames, ignore_index=True)


def rmse_pivot(table: pd.DataFrame) -> pd.DataFrame:
    """Test RMSE per (station, target, mode) with one column per family."""
    ok = table[table["Status"] == STATUS_OK]
    if ok.empty:
        return pd.DataFrame()
    pivot = ok.pivot_table(index=["Station", "Target", "Mode"], columns="Model", values="RMSE_Test")
    return pivot.rename(columns=FAMILY_LABELS)


def best_models(table: pd.DataFrame) -> pd.DataFrame:
    """Lowest test-RMSE family for each (station, target, mode)."""
    ok = table[table["Status"] == STATUS_OK].dropna(subset=["RMSE_Test"])
    if ok.empty:
        return ok
    idx = ok.groupby(["Station", "Target", "Mode"])["RMSE_Test"].idxmin()
    return ok.loc[idx].reset_index(drop=True)


# ═══════════════════════════════════════════════════════════════════════════
#  2. PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════
def _fname(result: ModelResult) -> str:
    station_safe = result.station.replace(" ", "_").replace("/", "_")
    return f"{station_safe}_{result.target}_{result.mode}_{result.family}.pkl"


def save_results(results, results_dir: str, models_dir: str | None = None) -> dict[str, str]:
    """Write the result collection and its flat tables to *results_dir*.

    Each family also gets its own result set (``{family}_results.joblib``, a
    table with a ``Feature_Relevance`` column) and each (family, target, mode)
    run a CSV under ``runs/``.

    Retained model objects are dumped one file each to *models_dir* when it is
    given.  Returns {artifact: path}.
    """
    os.makedirs(results_dir, exist_ok=True)
    ordered = _ordered(results)
    table = results_table(ordered)

    paths = {
        "results": os.path.join(results_dir, RESULTS_FILE),
        "table": os.path.join(results_dir, TABLE_FILE),
        "relevance": os.path.join(results_dir, RELEVANCE_FILE),
        "pivot": os.path.join(results_dir, PIVOT_FILE),
    }
    joblib.dump({r.key: r for r in ordered}, paths["results"])
    table.to_csv(paths["table"], index=False)
    relevance_table(ordered).to_csv(paths["relevance"], index=False)
    rmse_pivot(table).to_csv(paths["pivot"])

    for family, family_table in family_tables(ordered).items():
        path = os.path.join(results_dir, FAMILY_FILE.format(family=family))
        joblib.dump(family_table, path)
        paths[f"family:{family}"] = path

    runs_dir = os.path.join(results_dir, RUNS_DIR)
    os.makedirs(runs_dir, exist_ok=True)
    for (family, target, mode), run_table in run_tables(ordered).items():
        path = os.path.join(runs_dir, f"{family}_{target}_{mode}.csv")
        run_table.to_csv(path, index=False)
        paths[f"run:{family}_{target}_{mode}"] = path

    if models_dir:
        os.makedirs(models_dir, exist_ok=True)
        saved = 0
        for r in ordered:
            if r.model is not None:
                joblib.dump(r.model, os.path.join(models_dir, _fname(r)))
                saved += 1
        logger.info("Saved %d fitted models to %s", saved, models_dir)
    return paths


def load_results(path: str) -> dict:
    """Load a collection written by ``save_results``."""
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    return joblib.load(path)
