import math
import os

import joblib
import numpy as np
import pandas as pd
import pytest

from conftest import make_station
from station_models.config import ModelRunConfig
from station_models.pipeline import build_configs, count_status, run_batch, train_station
from station_models.results import (
    TABLE_COLUMNS,
    best_models,
    family_tables,
    load_results,
    relevance_table,
    results_table,
    rmse_pivot,
    run_tables,
    save_results,
)


def test_config_rejects_unknown_values():
    with pytest.raises(ValueError):
        ModelRunConfig(target="SO2")
    with pytest.raises(ValueError):
        ModelRunConfig(target="NO2", family="svm")
    with pytest.raises(ValueError):
        ModelRunConfig(target="NO2", train_fraction=1.0)


def test_train_station_linear(station_df):
    result = train_station(station_df, ModelRunConfig(target="NO2"))

    assert result.ok
    assert result.station == "Central"
    assert result.station_group == "traffic"
    assert result.mode == "prediction"
    assert result.n_train == math.floor(0.8 * len(station_df))
    assert result.n_test == len(station_df) - result.n_train
    assert result.rmse_test >= result.mae_test >= 0
    assert result.rmse_train >= result.mae_train >= 0
    assert result.model is None
    assert result.train_predictions["Date"].max() < result.test_predictions["Date"].min()
    assert list(result.test_predictions.columns) == ["Date", "Actual", "Predicted"]


def test_perfect_linear_data_gives_zero_error(linear_df):
    result = train_station(linear_df, ModelRunConfig(target="NO2"))
    assert result.rmse_test == pytest.approx(0.0, abs=1e-6)
    assert result.mae_test == pytest.approx(0.0, abs=1e-6)


def test_keep_model_retains_fitted_object(station_df):
    result = train_station(station_df, ModelRunConfig(target="NO2", keep_model=True))
    assert result.model is not None
    assert hasattr(result.model, "predict")


def test_ineligible_station_gives_null_record(station_df):
    station_df.loc[: len(station_df) // 2, "PM2_5"] = np.nan
    result = train_station(station_df, ModelRunConfig(target="PM2_5", family="xgboost"))

    assert result.status == "ineligible"
    assert result.model is None
    assert result.relevance is None
    assert result.test_predictions is None
    for value in (result.rmse_train, result.mae_train, result.rmse_test, result.mae_test):
        assert np.isnan(value)
    assert result.error is None


def test_absent_target_is_ineligible(suburb_df):
    result = train_station(suburb_df.drop(columns=["O3"]), ModelRunConfig(target="O3"))
    assert result.status == "ineligible"


def test_too_few_rows_is_a_recorded_failure():
    result = train_station(make_station(n=8), ModelRunConfig(target="NO2"))
    assert result.status == "failed"
    assert "complete rows" in result.error
    assert np.isnan(result.rmse_test)


def test_invalid_timestamps_are_a_recorded_failure(station_df):
    station_df.loc[10, "Date"] = station_df.loc[9, "Date"]
    result = train_station(station_df, ModelRunConfig(target="NO2"))
    assert result.status == "failed"
    assert "timestamps" in result.error


def test_fit_error_is_a_recorded_failure(station_df):
    config = ModelRunConfig(target="NO2", family="xgboost", param_grid={"max_depth": [-5]})
    result = train_station(station_df, config)
    assert result.status == "failed"
    assert result.station == "Central"


def test_build_configs_grid():
    configs = build_configs(targets=["NO2", "O3"], families=["linear", "xgboost"])
    assert len(configs) == 8
    assert {c.key for c in configs} == {
        (f, t, m) for f in ["linear", "xgboost"] for t in ["NO2", "O3"]
        for m in ["prediction", "forecast"]
    }


def _datasets():
    short = make_station(n=8, station="Tiny", group="background")
    sparse = make_station(station="Sparse", group="suburb", seed=2)
    sparse.loc[: len(sparse) // 2, "O3"] = np.nan
    return {
        "Central": make_station(),
        "Sparse": sparse,
        "Tiny": short,
    }


def test_run_batch_keeps_one_row_per_combination():
    datasets = _datasets()
    configs = build_configs(targets=["NO2", "O3"], families=["linear"])
    results = run_batch(datasets, configs, n_workers=1)

    assert len(results) == len(configs) * len(datasets)
    assert set(results) == {
        (c.family, c.target, c.mode, s) for c in configs for s in datasets
    }
    assert results[("linear", "O3", "prediction", "Sparse")].status == "ineligible"
    assert results[("linear", "NO2", "forecast", "Tiny")].status == "failed"
    assert results[("linear", "NO2", "forecast", "Central")].ok
    assert count_status(results) == {"ok": 6, "ineligible": 2, "failed": 4}

    tables = run_tables(results)
    assert set(tables) == {c.key for c in configs}
    for table in tables.values():
        assert table["Station"].tolist() == sorted(datasets)


def test_run_batch_in_worker_processes():
    datasets = {"Central": make_station(), "Tiny": make_station(n=8, station="Tiny")}
    configs = build_configs(targets=["NO2"], families=["linear"], modes=(False,))
    serial = run_batch(datasets, configs, n_workers=1)
    parallel = run_batch(datasets, configs, n_workers=2)

    assert list(serial) == list(parallel)
    for key in serial:
        assert serial[key].status == parallel[key].status
    key = ("linear", "NO2", "prediction", "Central")
    assert np.array_equal(serial[key].test_predictions["Predicted"],
                          parallel[key].test_predictions["Predicted"])


def test_results_are_named_by_dataset_key(tmp_path):
    datasets = {
        "central_file": make_station(station="Central"),
        "tiny_file": make_station(n=8, station="Tiny"),
    }
    configs = build_configs(targets=["NO2"], families=["linear"], modes=(False,))
    results = run_batch(datasets, configs, n_workers=1)

    assert results[("linear", "NO2", "prediction", "central_file")].ok
    assert results[("linear", "NO2", "prediction", "tiny_file")].status == "failed"
    for key, result in results.items():
        assert result.station == key[3]
        assert result.key == key

    paths = save_results(results, str(tmp_path))
    assert set(load_results(paths["results"])) == set(results)


def test_result_tables_and_persistence(tmp_path):
    datasets = _datasets()
    configs = build_configs(targets=["NO2", "O3"], families=["linear"], keep_model=True)
    results = run_batch(datasets, configs, n_workers=1)

    table = results_table(results)
    assert list(table.columns) == TABLE_COLUMNS
    assert len(table) == len(results)
    assert table.loc[table["Status"] != "ok", "RMSE_Test"].isna().all()

    tables = family_tables(results)
    assert list(tables) == ["linear"]
    assert "Feature_Relevance" in tables["linear"].columns

    rel = relevance_table(results)
    assert set(rel["Station"]) == {"Central", "Sparse"}
    assert rel.groupby(["Station", "Target", "Mode"])["Rank"].min().eq(1).all()

    pivot = rmse_pivot(table)
    assert list(pivot.columns) == ["Linear Regression"]

    best = best_models(table)
    assert len(best) == 6

    paths = save_results(results, str(tmp_path / "results"), models_dir=str(tmp_path / "models"))
    for path in paths.values():
        assert os.path.exists(path)
    assert len(os.listdir(tmp_path / "models")) == 6

    family_table = joblib.load(paths["family:linear"])
    assert isinstance(family_table, pd.DataFrame)
    assert len(family_table) == len(results)
    assert "Feature_Relevance" in family_table.columns
    assert len(os.listdir(tmp_path / "results" / "runs")) == len(configs)

    loaded = load_results(paths["results"])
    assert set(loaded) == set(results)
    key = ("linear", "NO2", "prediction", "Central")
    assert loaded[key].rmse_test == pytest.approx(results[key].rmse_test)


def test_load_results_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_results(str(tmp_path / "nope.joblib"))
