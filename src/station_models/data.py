"""
data.py - Station feature tables
================================
Reads the cleaned per-station CSVs produced by the preprocessing stage and
checks them against the column contract the trainer relies on.
"""

import glob
import logging
import os

import pandas as pd

from .config import DATE_COL, GROUP_COL, STATION_COL, STATION_GROUPS
from .errors import InvalidStationDataError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  1. DATA LOADING
# ═══════════════════════════════════════════════════════════════════════════
def load_datasets(data_dir: str) -> dict[str, pd.DataFrame]:
    """Read every CSV in *data_dir* and return {station_name: DataFrame}."""
    csv_files = sorted(glob.glob(os.path.join(data_dir, "*.csv")))
    datasets: dict[str, pd.DataFrame] = {}
    for fpath in csv_files:
        df = pd.read_csv(fpath, parse_dates=[DATE_COL])
        if df.empty:
            logger.warning("Skipping empty file %s", os.path.basename(fpath))
            continue
        station = str(df[STATION_COL].iloc[0])
        datasets[station] = df.sort_values(DATE_COL).reset_index(drop=True)
        print(f"  Loaded {station:25s}  ({len(df):>6} rows)  from {os.path.basename(fpath)}")
    return datasets


# ═══════════════════════════════════════════════════════════════════════════
#  2. CONTRACT CHECKS
# ═══════════════════════════════════════════════════════════════════════════
def validate_station_frame(df: pd.DataFrame) -> None:
    """Raise ``InvalidStationDataError`` if *df* is not a usable station table.

    The table must carry the identifier columns, a single station with a known
    group, and strictly increasing, unique timestamps.
    """
    missing = [c for c in (DATE_COL, STATION_COL, GROUP_COL) if c not in df.columns]
    if missing:
        raise InvalidStationDataError(f"missing identifier column(s): {missing}")

    stations = df[STATION_COL].dropna().unique()
    if len(stations) != 1:
        raise InvalidStationDataError(f"expected exactly one station, found {len(stations)}")

    groups = df[GROUP_COL].dropna().unique()
    if len(groups) != 1 or groups[0] not in STATION_GROUPS:
        raise InvalidStationDataError(f"invalid station group(s): {list(groups)}")

    dates = pd.to_datetime(df[DATE_COL])
    if dates.isna().any():
        raise InvalidStationDataError("timestamp column contains nulls")
    if not dates.is_monotonic_increasing or dates.duplicated().any():
        raise InvalidStationDataError("timestamps must be strictly increasing and unique")


def station_identity(df: pd.DataFrame) -> tuple[str, str]:
    """Return (station, station_group) of a station table."""
    return str(df[STATION_COL].iloc[0]), str(df[GROUP_COL].iloc[0])
