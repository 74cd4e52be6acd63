"""Exceptions raised inside a single station run.

None of these abort a batch: ``pipeline.train_station`` turns them into a
failed ``ModelResult``.
"""


class StationModelError(Exception):
    """Base class for per-station modeling failures."""


class InvalidStationDataError(StationModelError):
    """The station table violates the input contract (columns, timestamps)."""


class InsufficientRowsError(StationModelError):
    """Too few complete rows remain after cleaning to split and fit."""

    def __init__(self, n_rows: int, n_required: int):
        self.n_rows = n_rows
        self.n_required = n_required
        super().__init__(
            f"only {n_rows} complete rows after cleaning, need at least {n_required}"
        )


class ModelFitError(StationModelError):
    """The model-fitting routine failed for this station."""
