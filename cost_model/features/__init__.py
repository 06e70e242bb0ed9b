"""Feature whitening and stage-window centering."""

from .normalize import (
    PipelineStats, ScheduleStats, padded_window,
    normalize_pipeline_features, normalize_schedule_features,
    validate_features,
)
