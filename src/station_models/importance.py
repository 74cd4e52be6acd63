"""
importance.py - Cross-station feature-importance rankings
=========================================================
For one (model family, target, mode) and one station-group bucket:

1. min-max normalise each station's relevance scores to [0, 1];
2. weight them by ``1 / RMSE_train`` of that station's model;
3. average the weighted score per feature over the bucket's stations;
4. keep the top ``TOP_N`` features.

Scores are only comparable within one family and run, so rankings are never
mixed across families.
"""

import logging

import numpy as np
import pandas as pd

from .config import FAMILIES, GROUP_BUCKETS, TARGETS, TOP_N, mode_label

logger = logging.getLogger(__name__)

RANKING_COLUMNS = ["Feature", "Score", "N_Stations"]


def normalize_relevance(relevance: pd.DataFrame) -> pd.DataFrame:
    """Min-max scale the ``Importance`` column into [0, 1].

    A table whose scores are all equal carries no ranking information and
    scales to 0 throughout.
    """
    out = relevance.copy()
    scores = out["Importance"].astype(float)
    lo, hi = scores.min(), scores.max()
    if not np.isfinite(hi - lo) or hi == lo:
        out["Importance"] = 0.0
    else:
        out["Importance"] = (scores - lo) / (hi - lo)
    return out


def _weighted(result) -> pd.DataFrame | None:
    if not result.ok or result.relevance is None or result.relevance.empty:
        return None
    if not np.isfinite(result.rmse_train) or result.rmse_train <= 0:
        logger.info("Skipping %s: train RMSE %s cannot weight its importances",
                    result.station, result.rmse_train)
        return None
    rel = normalize_relevance(result.relevance)
    rel["Importance"] = rel["Importance"] / result.rmse_train
    rel["Station"] = result.station
    return rel


def top_features(results, groups, top_n: int = TOP_N) -> pd.DataFrame:
    """Average weighted importance over the stations whose group is in *groups*."""
    frames = [
        w for w in (_weighted(r) for r in results if r.station_group in groups)
        if w is not None
    ]
    if not frames:
        return pd.DataFrame(columns=RANKING_COLUMNS)

    stacked = pd.concat(frames, ignore_index=True)
    ranking = (
        stacked.groupby("Feature", sort=True)
        .agg(Score=("Importance", "mean"), N_Stations=("Station", "nunique"))
        .reset_index()
        .sort_values("Score", ascending=False, kind="mergesort")
        .head(top_n)
        .reset_index(drop=True)
    )
    return ranking[RANKING_COLUMNS]


def importance_ranking(results: dict, family: str, target: str, forecast: bool = False,
                       top_n: int = TOP_N) -> dict[str, pd.DataFrame]:
    """Top-N rankings per station-group bucket for one (family, target, mode)."""
    mode = mode_label(forecast)
    selected = [
        r for r in results.values()
        if r.family == family and r.target == target and r.mode == mode
    ]
    return {
        bucket: top_features(selected, groups, top_n=top_n)
        for bucket, groups in GROUP_BUCKETS.items()
    }


def importance_report(results: dict, families=FAMILIES, targets=TARGETS,
                      modes=(False, True), top_n: int = TOP_N) -> pd.DataFrame:
    """Long table of every ranking, ready for the reporting layer."""
    frames = []
    for family in families:
        for target in targets:
            for forecast in modes:
                rankings = importance_ranking(results, family, target, forecast, top_n)
                for bucket, ranking in rankings.items():
                    if ranking.empty:
                        continue
                    ranking = ranking.copy()
                    ranking.insert(0, "Bucket", bucket)
                    ranking.insert(0, "Mode", mode_label(forecast))
                    ranking.insert(0, "Target", target)
                    ranking.insert(0, "Model", family)
                    ranking["Rank"] = np.arange(1, len(ranking) + 1)
                    frames.append(ranking)
    if not frames:
        return pd.DataFrame(columns=["Model", "Target", "Mode", "Bucket", *RANKING_COLUMNS, "Rank"])
    return pd.concat(frames, ignore_index=True)
