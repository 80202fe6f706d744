# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - OPS Pipeline Utilities Package
# Tasks: T0018, T0021, T0042-T0045 (Sprint 8)
# ═══════════════════════════════════════════════════════════════════════

"""
OPS Pipeline Utilities Package - REUSABLE UTILITIES ONLY

Record handling:
- delimited_parser: Pipe-delimited line parsing / CSV-style output quoting
- record_repair: Rejoin records split by embedded line breaks (T0043)
- encoding_utils: UTF-16 LE → UTF-8 re-encoding (T0042)

Loading:
- staged_loader: Staging table + first-column merge (T0018, T0021)

Run control:
- progress_utils: Stage-weighted global progress (T0044)
- notifications: Progress / log channels (T0044)
- cancellation: Cooperative cancellation token (T0045)
"""

from .cancellation import CancellationToken
from .delimited_parser import build_line, parse_line
from .encoding_utils import normalize
from .notifications import EventChannel, PipelineNotifier, QueueSubscriber
from .progress_utils import ProgressAggregator, map_slice_percent, map_stage_percent
from .record_repair import RecordRepairEngine, RepairResult

# Imports pandas + SQLAlchemy; import directly when needed:
#   from ops_sync.utils.staged_loader import StagedLoader

__all__ = [
    'CancellationToken',
    'build_line',
    'parse_line',
    'normalize',
    'EventChannel',
    'PipelineNotifier',
    'QueueSubscriber',
    'ProgressAggregator',
    'map_slice_percent',
    'map_stage_percent',
    'RecordRepairEngine',
    'RepairResult',
]
