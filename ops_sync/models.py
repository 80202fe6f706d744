# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Pipeline Data Models
# Tasks: T0041, T0046
# ═══════════════════════════════════════════════════════════════════════

"""
models.py - Pydantic models shared by the download and load phases

Provides schema definitions for:
- Remote SFTP endpoints (parsed from the connection directory)
- File jobs (parsed from the file list)
- Repair audit entries
- Progress and log events (notification channels)
- Run results (tri-state outcome + status text)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


# ========================================
# Team 1 - T0041: Configuration entities
# ========================================

class RemoteEndpoint(BaseModel):
    """One SFTP server section from the connection directory"""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Section name, e.g. 'bu2532 - HCP - Brenso DSA'")
    protocol: str = Field("", description="Transfer protocol (informational, always SFTP)")
    host: str = Field("", description="Remote host name")
    user: str = Field("", description="Login user")
    secret: str = Field("", description="Login password", repr=False)
    remote_path: str = Field("", description="Remote folder holding the export files")
    business_unit_tag: str = Field("", description="Business-unit id derived from the name")


class FileJob(BaseModel):
    """Unit of work for the load phase: one destination table, one local file"""
    model_config = ConfigDict(frozen=True)

    table_name: str
    local_file_path: str


class RepairAudit(BaseModel):
    """A record that was reassembled from several physical lines"""
    model_config = ConfigDict(frozen=True)

    row_number: int
    original_value: str
    repaired_value: str

    def __str__(self) -> str:
        return f"Row {self.row_number}: '{self.original_value}' -> '{self.repaired_value}'"


# ========================================
# Team 1 - T0046: Notification events
# ========================================

class ProgressEvent(BaseModel):
    """Pipeline-global progress update"""
    model_config = ConfigDict(frozen=True)

    scope_label: str = ""
    current_index: int = 0
    total_count: int = 0
    global_percent: int = Field(0, ge=0, le=100)
    step_label: str = ""
    message: str = ""


class LogEvent(BaseModel):
    """Plain log line mirrored from the logging module"""
    model_config = ConfigDict(frozen=True)

    message: str
    level: str = "INFO"
    timestamp: datetime = Field(default_factory=datetime.now)


# ========================================
# Team 1 - T0047: Run results
# ========================================

class RunOutcome(str, Enum):
    """Tri-state outcome of a top-level run"""
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


class RunResult(BaseModel):
    """Outcome of a download or load run as seen by the observer"""

    outcome: RunOutcome
    status: str
    message: str = ""
    warnings: List[str] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.SUCCEEDED

    @classmethod
    def complete(cls, message: str, warnings: List[str] = None,
                 stats: Dict[str, Any] = None) -> "RunResult":
        warnings = list(warnings or [])
        return cls(
            outcome=RunOutcome.SUCCEEDED,
            status="Completed with warnings" if warnings else "Complete",
            message=message,
            warnings=warnings,
            stats=stats or {},
        )

    @classmethod
    def cancelled(cls, message: str, stats: Dict[str, Any] = None) -> "RunResult":
        return cls(outcome=RunOutcome.CANCELLED, status="Cancelled",
                   message=message, stats=stats or {})

    @classmethod
    def failed(cls, message: str, stats: Dict[str, Any] = None) -> "RunResult":
        return cls(outcome=RunOutcome.FAILED, status="Failed",
                   message=message, stats=stats or {})

    @classmethod
    def error(cls, message: str, stats: Dict[str, Any] = None) -> "RunResult":
        """Unexpected exception escaped the run"""
        return cls(outcome=RunOutcome.FAILED, status="Error",
                   message=message, stats=stats or {})
