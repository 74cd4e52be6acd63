import numpy as np
import pandas as pd
import pytest

WIND_BUCKETS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


def make_station(n=240, station="Central", group="traffic", seed=0):
    """Synthetic hourly station table following the cleaned-CSV column set."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2023-03-01", periods=n, freq="h")

    temp = 10 + 8 * np.sin(np.arange(n) * 2 * np.pi / 24) + rng.normal(0, 1, n)
    humidity = 60 + rng.normal(0, 10, n)
    wind_speed = np.abs(rng.normal(4, 2, n))
    wind_dir = rng.uniform(0, 360, n)
    precip = np.clip(rng.normal(0, 0.5, n), 0, None)

    df = pd.DataFrame({
        "Date": dates,
        "Station": station,
        "Station_Group": group,
        "Temp": temp,
        "Humidity": humidity,
        "Dewpoint": temp - (100 - humidity) / 5,
        "Pressure": 1013 + rng.normal(0, 5, n),
        "Precip": precip,
        "Wind_Speed": wind_speed,
        "Wind_Dir": wind_dir,
        "Wind_Dir_Cat": [WIND_BUCKETS[int(d // 45) % 8] for d in wind_dir],
        "Hour": dates.hour,
        "Month": dates.month,
        "Weekday": dates.weekday,
        "Is_Weekend": (dates.weekday >= 5).astype(int),
        "Precip_Sum_24": pd.Series(precip).rolling(24, min_periods=1).sum().to_numpy(),
    })

    base = 30 - 2 * wind_speed + 0.5 * temp + rng.normal(0, 2, n)
    if group == "traffic":
        traffic = 400 + 300 * np.sin(np.arange(n) * 2 * np.pi / 24) + rng.normal(0, 30, n)
        df["Traffic_Count"] = traffic
        df["Heavy_Vehicles"] = traffic * 0.1 + rng.normal(0, 5, n)
        base = base + 0.02 * traffic

    df["NO2"] = base
    df["PM10"] = 0.8 * base + rng.normal(0, 2, n)
    df["PM2_5"] = 0.5 * base + rng.normal(0, 1, n)
    df["O3"] = 60 - 0.5 * base + rng.normal(0, 3, n)
    df["CAQI"] = np.maximum(df["NO2"], df["PM10"])
    df["CAQI_Category"] = pd.cut(df["CAQI"], [-np.inf, 25, 50, 75, np.inf],
                                 labels=["very low", "low", "medium", "high"]).astype(str)
    return df


def make_linear_station(n=120, station="Linear", group="suburb"):
    """Noise-free table where NO2 is an exact linear function of two covariates."""
    rng = np.random.default_rng(7)
    temp = rng.uniform(-5, 30, n)
    humidity = rng.uniform(20, 95, n)
    return pd.DataFrame({
        "Date": pd.date_range("2023-01-01", periods=n, freq="h"),
        "Station": station,
        "Station_Group": group,
        "Temp": temp,
        "Humidity": humidity,
        "NO2": 3.0 * temp - 0.5 * humidity + 12.0,
    })


@pytest.fixture
def station_df():
    return make_station()


@pytest.fixture
def suburb_df():
    return make_station(station="Garden", group="suburb", seed=1)


@pytest.fixture
def linear_df():
    return make_linear_station()
