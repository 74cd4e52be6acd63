"""
models.py - The three fitting strategies
========================================
Ordinary least squares, random forest and XGBoost, each consuming the
shared encoded design matrix and returning a ``FitOutcome``.

The tree ensembles run inside a ``GridSearchCV`` over a ``TimeSeriesSplit``.
Their default grids hold a single candidate, so cross-validation only
estimates generalisation; pass ``param_grid`` on the run config to search.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import LinearRegression
from sklearn.model_selection import GridSearchCV, TimeSeriesSplit, cross_val_score
from xgboost import XGBRegressor

from .config import N_SPLITS, RANDOM_STATE, RF_PARAMS, XGB_PARAMS, ModelRunConfig
from .errors import ModelFitError
from .features import EncodedFeatures
from .metrics import forest_node_purity, incremental_relevance, tree_relevance


@dataclass(frozen=True, eq=False)
class FitOutcome:
    model: object
    train_pred: np.ndarray
    test_pred: np.ndarray
    relevance: pd.DataFrame
    cv_rmse: float = np.nan


# ═══════════════════════════════════════════════════════════════════════════
#  1. MODEL DEFINITIONS
# ═══════════════════════════════════════════════════════════════════════════
def _get_rf():
    return RandomForestRegressor(random_state=RANDOM_STATE, n_jobs=1)


def _get_xgb():
    return XGBRegressor(
        random_state=RANDOM_STATE,
        importance_type="total_gain",
        n_jobs=1,
        verbosity=0,
    )


def _single_point(params: dict) -> dict:
    return {name: [value] for name, value in params.items()}


def _tscv(n_rows: int) -> TimeSeriesSplit:
    return TimeSeriesSplit(n_splits=max(2, min(N_SPLITS, n_rows - 1)))


def _grid_search(estimator, grid: dict, X: np.ndarray, y: np.ndarray) -> GridSearchCV:
    search = GridSearchCV(
        estimator=estimator,
        param_grid=grid,
        scoring="neg_root_mean_squared_error",
        cv=_tscv(len(y)),
        refit=True,
        n_jobs=1,
        error_score="raise",
    )
    np.random.seed(RANDOM_STATE)
    search.fit(X, y)
    return search


# ═══════════════════════════════════════════════════════════════════════════
#  2. STRATEGIES
# ═══════════════════════════════════════════════════════════════════════════
def fit_linear(encoded: EncodedFeatures, y_train, config: ModelRunConfig) -> FitOutcome:
    """OLS on every covariate, then incremental adjusted-R² relevance.

    ``LinearRegression`` solves by least squares, so perfectly collinear
    indicator columns are absorbed rather than raising.
    """
    X_train = encoded.X_train.to_numpy(dtype=float)
    X_test = encoded.X_test.to_numpy(dtype=float)
    y = np.asarray(y_train, dtype=float)
    try:
        model = LinearRegression().fit(X_train, y)
        cv = cross_val_score(LinearRegression(), X_train, y, cv=_tscv(len(y)),
                             scoring="neg_root_mean_squared_error")
        relevance = incremental_relevance(encoded.X_train, y, encoded.sources, encoded.feature_cols)
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise ModelFitError(f"linear fit failed: {exc}") from exc

    return FitOutcome(
        model=model,
        train_pred=model.predict(X_train),
        test_pred=model.predict(X_test),
        relevance=relevance,
        cv_rmse=float(-np.mean(cv)),
    )


def fit_random_forest(encoded: EncodedFeatures, y_train, config: ModelRunConfig) -> FitOutcome:
    """Random forest with node-purity relevance."""
    X_train = encoded.X_train.to_numpy(dtype=float)
    X_test = encoded.X_test.to_numpy(dtype=float)
    y = np.asarray(y_train, dtype=float)

    params = dict(RF_PARAMS)
    params["max_features"] = min(params["max_features"], X_train.shape[1])
    grid = config.param_grid or _single_point(params)
    try:
        search = _grid_search(_get_rf(), grid, X_train, y)
    except Exception as exc:
        raise ModelFitError(f"random forest fit failed: {exc}") from exc

    model = search.best_estimator_
    return FitOutcome(
        model=model,
        train_pred=model.predict(X_train),
        test_pred=model.predict(X_test),
        relevance=tree_relevance(forest_node_purity(model), encoded.columns),
        cv_rmse=float(-search.best_score_),
    )


def fit_xgboost(encoded: EncodedFeatures, y_train, config: ModelRunConfig) -> FitOutcome:
    """Gradient-boosted trees with gain-based relevance."""
    X_train = encoded.X_train.to_numpy(dtype=float)
    X_test = encoded.X_test.to_numpy(dtype=float)
    y = np.asarray(y_train, dtype=float)

    grid = config.param_grid or _single_point(XGB_PARAMS)
    try:
        search = _grid_search(_get_xgb(), grid, X_train, y)
    except Exception as exc:
        raise ModelFitError(f"xgboost fit failed: {exc}") from exc

    model = search.best_estimator_
    return FitOutcome(
        model=model,
        train_pred=model.predict(X_train),
        test_pred=model.predict(X_test),
        relevance=tree_relevance(model.feature_importances_, encoded.columns),
        cv_rmse=float(-search.best_score_),
    )


STRATEGIES = {
    "linear": fit_linear,
    "random_forest": fit_random_forest,
    "xgboost": fit_xgboost,
}
