import os

import pytest

from conftest import make_station
from main import main, parse_args


@pytest.mark.parametrize("fraction", ["0", "1.0", "1.5", "-0.2"])
def test_out_of_range_train_fraction_is_a_usage_error(fraction, capsys):
    with pytest.raises(SystemExit) as exc:
        parse_args(["--train-fraction", fraction])
    assert exc.value.code == 2
    assert "--train-fraction" in capsys.readouterr().err


def test_train_fraction_in_range_is_accepted():
    assert parse_args(["--train-fraction", "0.7"]).train_fraction == 0.7


def test_main_writes_family_and_run_outputs(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    make_station().to_csv(data_dir / "central.csv", index=False)
    make_station(station="Garden", group="suburb", seed=1).to_csv(data_dir / "garden.csv", index=False)
    results_dir = tmp_path / "results"

    code = main([
        "--data-dir", str(data_dir), "--results-dir", str(results_dir),
        "--targets", "NO2", "--families", "linear", "--mode", "prediction", "--workers", "1",
    ])

    assert code == 0
    assert os.path.exists(results_dir / "linear_results.joblib")
    assert os.listdir(results_dir / "runs") == ["linear_NO2_prediction.csv"]
    assert os.path.exists(results_dir / "feature_importance_ranking.csv")


def test_main_without_station_files(tmp_path):
    assert main(["--data-dir", str(tmp_path), "--results-dir", str(tmp_path / "out")]) == 1
