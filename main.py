#!/usr/bin/env python3
"""
main.py - Station Model Training Pipeline
=========================================
Trains linear regression, random forest and XGBoost models for every station
CSV in data/data_clean/, for each of the five targets, in prediction and
forecast mode, then writes the result tables and cross-station
feature-importance rankings to results/.

    python main.py --workers 4
    python main.py --targets NO2 PM10 --families xgboost --keep-models
"""

import argparse
import logging
import os
import warnings

from station_models.config import (
    DATA_DIR,
    FAMILIES,
    MODELS_DIR,
    N_WORKERS,
    RESULTS_DIR,
    TARGETS,
    TRAIN_FRACTION,
)
from station_models.data import load_datasets
from station_models.importance import importance_report
from station_models.pipeline import build_configs, count_status, run_batch
from station_models.results import best_models, results_table, save_results

warnings.filterwarnings("ignore")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--data-dir", default=DATA_DIR, help="Directory of cleaned station CSVs")
    parser.add_argument("--results-dir", default=RESULTS_DIR, help="Directory for result tables")
    parser.add_argument("--models-dir", default=MODELS_DIR, help="Directory for fitted models")
    parser.add_argument("--targets", nargs="+", default=TARGETS, choices=TARGETS)
    parser.add_argument("--families", nargs="+", default=FAMILIES, choices=FAMILIES)
    parser.add_argument("--mode", choices=["both", "prediction", "forecast"], default="both")
    parser.add_argument("--train-fraction", type=float, default=TRAIN_FRACTION)
    parser.add_argument("--workers", type=int, default=N_WORKERS)
    parser.add_argument("--keep-models", action="store_true",
                        help="Keep fitted models in the results and save them to --models-dir")
    args = parser.parse_args(argv)
    if not 0.0 < args.train_fraction < 1.0:
        parser.error(f"--train-fraction must be strictly between 0 and 1, got {args.train_fraction}")
    return args


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    print("=" * 70)
    print("  Station Model Training Pipeline")
    print("=" * 70)

    # ── Load data ─────────────────────────────────────────────────────────
    print("\n[1/4] Loading datasets …")
    datasets = load_datasets(args.data_dir)
    if not datasets:
        print(f"\nERROR: No station CSVs found in {args.data_dir}")
        return 1
    print(f"\n  Stations found: {len(datasets)}")

    # ── Train ─────────────────────────────────────────────────────────────
    modes = {"both": (False, True), "prediction": (False,), "forecast": (True,)}[args.mode]
    configs = build_configs(args.targets, args.families, modes,
                            train_fraction=args.train_fraction, keep_model=args.keep_models)
    print(f"\n[2/4] Training {len(configs) * len(datasets)} models on {args.workers} worker(s) …")
    results = run_batch(datasets, configs, n_workers=args.workers)
    counts = count_status(results)
    print("\n  " + "  ".join(f"{status}={n}" for status, n in sorted(counts.items())))

    # ── Save ──────────────────────────────────────────────────────────────
    print("\n[3/4] Saving results …")
    paths = save_results(results, args.results_dir,
                         models_dir=args.models_dir if args.keep_models else None)
    ranking = importance_report(results, args.families, args.targets, modes)
    ranking_path = os.path.join(args.results_dir, "feature_importance_ranking.csv")
    ranking.to_csv(ranking_path, index=False)
    run_paths = [p for name, p in paths.items() if name.startswith("run:")]
    for name, path in [*paths.items(), ("ranking", ranking_path)]:
        if not name.startswith("run:"):
            print(f"    - {path}")
    if run_paths:
        print(f"    - {len(run_paths)} per-run tables in {os.path.dirname(run_paths[0])}")

    # ── Print final summary ───────────────────────────────────────────────
    print("\n[4/4] Best model per station …")
    best = best_models(results_table(results))
    for _, row in best.iterrows():
        print(f"    {row['Station']:25s}  {row['Target']:6s}  {row['Mode']:10s}  "
              f"Best={row['Model']:14s}  RMSE={row['RMSE_Test']:.4f}")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
