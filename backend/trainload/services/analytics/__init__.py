"""
Analytics module - Training load and ACWR calculation.

This module provides:
- Numeric utilities (rounding, unit conversion, ISO weeks)
- The per-workout training-load engine
- The weekly ACWR aggregator
"""
from trainload.services.analytics.training_load import (
    WorkoutLoadInput,
    WorkoutLoadComputation,
    compute_delta_hr,
    compute_workout_load,
    get_beta_for_sex,
)
from trainload.services.analytics.acwr import (
    TrainingLoadSummary,
    derive_status,
    summarize_training_load,
)

__all__ = [
    # Load engine
    "WorkoutLoadInput",
    "WorkoutLoadComputation",
    "compute_delta_hr",
    "compute_workout_load",
    "get_beta_for_sex",
    # Aggregator
    "TrainingLoadSummary",
    "derive_status",
    "summarize_training_load",
]
