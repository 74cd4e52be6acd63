"""
metrics.py - Error metrics and feature relevance
================================================
RMSE / MAE are computed identically for every model family so their numbers
are comparable.  Relevance scores are family specific:

* linear models: incremental adjusted-R² gain, adding features one at a time
  in table order.  This is an order-dependent approximation, not a
  commutative attribution such as permutation or Shapley importance.
* random forest: total node-purity (impurity) decrease.
* boosted trees: share of total split gain.
"""

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.metrics import r2_score

RELEVANCE_COLUMNS = ["Feature", "Importance"]


# ═══════════════════════════════════════════════════════════════════════════
#  1. ERROR METRICS
# ═══════════════════════════════════════════════════════════════════════════
def _paired(y_true, y_pred) -> tuple[np.ndarray, np.ndarray]:
    """Drop positions where either the actual or the prediction is null."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    mask = ~(np.isnan(y_true) | np.isnan(y_pred))
    return y_true[mask], y_pred[mask]


def rmse(y_true, y_pred) -> float:
    y_true, y_pred = _paired(y_true, y_pred)
    if y_true.size == 0:
        return np.nan
    return float(np.sqrt(np.mean((y_pred - y_true) ** 2)))


def mae(y_true, y_pred) -> float:
    y_true, y_pred = _paired(y_true, y_pred)
    if y_true.size == 0:
        return np.nan
    return float(np.mean(np.abs(y_pred - y_true)))


def evaluate(y_true, y_pred) -> dict:
    """Return dict of regression metrics."""
    y_true, y_pred = _paired(y_true, y_pred)
    if y_true.size == 0:
        return {"RMSE": np.nan, "MAE": np.nan, "R2": np.nan, "MAPE": np.nan}
    r2 = r2_score(y_true, y_pred) if y_true.size > 1 else np.nan
    # Guard against zero division in MAPE
    mask = y_true != 0
    mape = np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100 if mask.any() else np.nan
    return {"RMSE": rmse(y_true, y_pred), "MAE": mae(y_true, y_pred), "R2": float(r2), "MAPE": float(mape)}


# ═══════════════════════════════════════════════════════════════════════════
#  2. LINEAR RELEVANCE
# ═══════════════════════════════════════════════════════════════════════════
def adjusted_r2(r2: float, n: int, p: int) -> float:
    """Adjusted R² of a model with *p* effective predictors on *n* rows.

    NaN when the model has no residual degrees of freedom.
    """
    if n - p - 1 <= 0:
        return np.nan
    return 1.0 - (1.0 - r2) * (n - 1) / (n - p - 1)


def _effective_rank(X: np.ndarray) -> int:
    # Rank after centering, i.e. ignoring columns aliased with the intercept.
    if X.shape[1] == 0:
        return 0
    return int(np.linalg.matrix_rank(X - X.mean(axis=0)))


def linear_adjusted_r2(X: pd.DataFrame, y) -> float:
    """Fit OLS on *X* and return its in-sample adjusted R².

    Redundant (collinear) columns do not count as predictors.
    """
    y = np.asarray(y, dtype=float)
    if X.shape[1] == 0:
        return 0.0
    values = X.to_numpy(dtype=float)
    model = LinearRegression().fit(values, y)
    r2 = r2_score(y, model.predict(values))
    return adjusted_r2(r2, len(y), _effective_rank(values))


def incremental_relevance(X: pd.DataFrame, y, sources: list[str],
                          feature_cols: list[str]) -> pd.DataFrame:
    """Marginal adjusted-R² gain of each feature, in *feature_cols* order.

    Step *k* fits a fresh OLS model on the encoded columns of the first *k*
    features.  Its score is the gain over the best prefix so far,
    ``max(0, R²_k - max(R²_0, ..., R²_{k-1}))`` with ``R²_0 = 0``, so the
    scores never add up to more than the best prefix model's adjusted R².
    A step without residual degrees of freedom scores 0.
    """
    sources = np.asarray(sources, dtype=object)
    rows = []
    previous = 0.0
    for k, feature in enumerate(feature_cols, start=1):
        included = np.isin(sources, feature_cols[:k])
        current = linear_adjusted_r2(X.loc[:, included], y)
        if np.isnan(current):
            rows.append((feature, 0.0))
            continue
        rows.append((feature, max(0.0, current - previous)))
        previous = max(previous, current)
    return _ranked(rows)


# ═══════════════════════════════════════════════════════════════════════════
#  3. TREE RELEVANCE
# ═══════════════════════════════════════════════════════════════════════════
def forest_node_purity(model) -> np.ndarray:
    """Unnormalised impurity decrease per column, averaged over the trees."""
    per_tree = [est.tree_.compute_feature_importances(normalize=False) for est in model.estimators_]
    return np.mean(per_tree, axis=0)


def tree_relevance(importances, columns: list[str]) -> pd.DataFrame:
    importances = np.nan_to_num(np.asarray(importances, dtype=float))
    return _ranked(list(zip(columns, importances)))


def _ranked(rows) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=RELEVANCE_COLUMNS)
    df["Importance"] = df["Importance"].astype(float)
    return df.sort_values("Importance", ascending=False, kind="mergesort").reset_index(drop=True)
