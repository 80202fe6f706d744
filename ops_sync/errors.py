# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Pipeline Exceptions
# Tasks: T0041
# ═══════════════════════════════════════════════════════════════════════

"""
errors.py - Exception hierarchy for the OPS file synchronization pipeline

Per-unit errors (one file, one endpoint) are caught by the orchestrators
and turned into log events; only unexpected exceptions reach the
top-level run handler.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors"""
    pass


class ConfigurationError(PipelineError):
    """Connection directory, file list or settings could not be read"""
    pass


class MalformedRecordError(PipelineError):
    """Input ended while a record was still short of fields"""

    def __init__(self, message: str, row_number: int = 0):
        super().__init__(message)
        self.row_number = row_number


class EncodingConversionError(PipelineError):
    """Source file could not be decoded as UTF-16"""
    pass


class StagedLoadError(PipelineError):
    """Staging table creation, bulk copy or merge failed"""

    def __init__(self, message: str, table_name: str = ""):
        super().__init__(message)
        self.table_name = table_name


class RemoteTransferError(PipelineError):
    """SFTP session or transfer failed"""
    pass


class OperationCancelled(PipelineError):
    """Raised at a safe point once cancellation was requested"""
    pass
