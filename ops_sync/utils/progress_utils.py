# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Progress Aggregator
# Tasks: T0044
# ═══════════════════════════════════════════════════════════════════════

"""
Progress Aggregator - maps stage-local progress onto one 0-100 signal

Stage weights:
- Download run: cleanup 5%, downloads 95%
- Load run: maintenance 10%, files 80%, consolidation 10%
- Within one file of the load run: encoding 0-33%, repair 33-75%, load 75-100%
"""

from typing import Optional, Sequence

from ..models import ProgressEvent
from .notifications import PipelineNotifier

DOWNLOAD_STAGE_WEIGHTS = (5, 95)
DOWNLOAD_CLEANUP, DOWNLOAD_TRANSFER = 0, 1

LOAD_STAGE_WEIGHTS = (10, 80, 10)
LOAD_MAINTENANCE, LOAD_FILES, LOAD_CONSOLIDATION = 0, 1, 2

# Sub-step boundaries inside one file's slice
FILE_STEP_ENCODING = 0
FILE_STEP_REPAIR = 33
FILE_STEP_LOAD = 75
FILE_STEP_DONE = 100


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def map_stage_percent(stage_weights: Sequence[float],
                      stage_index: int,
                      stage_local_percent: float) -> int:
    """
    Map a stage-local percentage onto the pipeline-global percentage

    Args:
        stage_weights: Relative weight of each stage (normalized to 100)
        stage_index: Index of the stage that is reporting
        stage_local_percent: Completion of that stage, 0-100

    Returns:
        Global percentage, 0-100
    """
    if not stage_weights:
        raise ValueError("stage_weights must not be empty")
    if not 0 <= stage_index < len(stage_weights):
        raise IndexError(f"stage_index {stage_index} out of range")
    total = float(sum(stage_weights))
    if total <= 0:
        raise ValueError("stage_weights must sum to a positive value")

    start = sum(stage_weights[:stage_index]) * 100 / total
    width = stage_weights[stage_index] * 100 / total
    return int(_clamp(start + width * _clamp(stage_local_percent) / 100))


def map_slice_percent(item_index: int, item_count: int, item_local_percent: float) -> float:
    """
    Stage-local percentage for item `item_index` (1-based) of `item_count`
    equal slices, `item_local_percent` of the way through its own slice
    """
    if item_count <= 0:
        return 100.0
    item_index = max(1, min(item_index, item_count))
    return ((item_index - 1) * 100 + _clamp(item_local_percent)) / item_count


class ProgressAggregator:
    """
    Publishes a non-decreasing global percentage for one run

    Percentages lower than the last published value are raised to it, so
    observers never see the bar move backwards.
    """

    def __init__(self, notifier: PipelineNotifier, stage_weights: Sequence[float]):
        self.notifier = notifier
        self.stage_weights = tuple(stage_weights)
        self.last_percent = 0

    def report(self,
               stage_index: int,
               stage_local_percent: float,
               scope_label: str = "",
               step_label: str = "",
               message: str = "",
               current_index: int = 0,
               total_count: int = 0) -> ProgressEvent:
        percent = map_stage_percent(self.stage_weights, stage_index, stage_local_percent)
        return self.emit(percent, scope_label, step_label, message, current_index, total_count)

    def emit(self,
             percent: int,
             scope_label: str = "",
             step_label: str = "",
             message: Optional[str] = None,
             current_index: int = 0,
             total_count: int = 0) -> ProgressEvent:
        percent = max(self.last_percent, int(_clamp(percent)))
        self.last_percent = percent
        if message is None or message == "":
            message = f"File {current_index}/{total_count}: {scope_label} - {step_label}"
        event = ProgressEvent(
            scope_label=scope_label,
            current_index=current_index,
            total_count=total_count,
            global_percent=percent,
            step_label=step_label,
            message=message,
        )
        self.notifier.progress(event)
        return event

    def complete(self, message: str = "Completed") -> ProgressEvent:
        return self.emit(100, scope_label="", step_label="Completed", message=message)
