"""
station_models - per-station air-quality model training and evaluation.

Fits linear regression, random forest and XGBoost models for each monitoring
station, target pollutant and mode (same-time prediction or lagged forecast),
and ranks feature importance across stations.
"""

from .config import ModelRunConfig
from .pipeline import run_batch, train_station
from .results import ModelResult, results_table, save_results

__version__ = "0.1.0"
