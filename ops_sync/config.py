# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Pipeline Configuration
# Task: T0041
# ═══════════════════════════════════════════════════════════════════════

"""
config.py - Pipeline Configuration Settings

Provides centralized configuration for both phases:
- Database connection settings
- Local staging directory, connection directory, file list
- Download tuning (poll interval, timeouts)
- Load tuning (batch size, bulk copy / merge timeouts)
- Maintenance and consolidation operations

Values come from environment variables first, then from an optional YAML
file (config/pipeline_config.yaml) that overrides them.
"""

import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .config_loader import ConfigLoader


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


# ========================================
# Team 1 - T0041: Stored operations
# ========================================

class StoredOperation(BaseModel):
    """A maintenance or consolidation operation run on the database"""
    name: str
    statement: Optional[str] = Field(None, description="SQL to run (default: EXEC <name>)")
    timeout: int = Field(120, description="Command timeout in seconds")

    def sql(self, dialect_name: str) -> str:
        if self.statement:
            return self.statement
        if dialect_name == "mssql":
            return f"EXEC {self.name}"
        return f"CALL {self.name}()"


DEFAULT_MAINTENANCE_OPERATIONS = [
    StoredOperation(name="sp_truncate_import_tables", timeout=120),
    StoredOperation(name="sp_truncate_sfmc_tables", timeout=120),
]

DEFAULT_CONSOLIDATION_OPERATION = StoredOperation(
    name="sp_bu_to_sfmc_MasterConsolidation", timeout=600
)


# ========================================
# Team 1 - T0041: Pipeline settings
# ========================================

class PipelineConfig(BaseModel):
    """Pipeline Configuration Settings"""

    # Database Connection
    database_url: str = Field(default_factory=lambda: _env(
        "OPS_DATABASE_URL",
        "mssql+pyodbc://HERMES/InsMedOPS?driver=ODBC+Driver+18+for+SQL+Server"
        "&trusted_connection=yes&TrustServerCertificate=yes",
    ))
    connect_timeout: int = Field(default_factory=lambda: int(_env("OPS_DB_CONNECT_TIMEOUT", "240")))

    # Files
    local_directory: str = Field(default_factory=lambda: _env("OPS_LOCAL_DIR", "data/sfmc_ftp"))
    connections_file: str = Field(default_factory=lambda: _env("OPS_CONNECTIONS_FILE", "config/ftp_connections.txt"))
    file_list: str = Field(default_factory=lambda: _env("OPS_FILE_LIST", "config/FileList.txt"))
    managed_extension: str = ".csv"

    # Download tuning
    sftp_port: int = 22
    sftp_timeout: int = 30
    poll_interval: float = 0.1

    # Load tuning
    batch_size: int = 10000
    bulk_copy_timeout: int = 300
    merge_timeout: int = 500
    unescape_cleaned_fields: bool = False

    # Maintenance (before) and consolidation (after) operations
    maintenance_operations: List[StoredOperation] = Field(
        default_factory=lambda: [op.model_copy() for op in DEFAULT_MAINTENANCE_OPERATIONS]
    )
    consolidation_operation: Optional[StoredOperation] = Field(
        default_factory=lambda: DEFAULT_CONSOLIDATION_OPERATION.model_copy()
    )

    @property
    def local_path(self) -> Path:
        return Path(self.local_directory)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PipelineConfig":
        """Environment defaults overlaid with a YAML/JSON settings file"""
        data = ConfigLoader.load(path)
        return cls(**data)


def load_config(path: Optional[Union[str, Path]] = None) -> PipelineConfig:
    """Settings file given explicitly, else $OPS_CONFIG, else environment only"""
    path = path or os.getenv("OPS_CONFIG")
    if path:
        return PipelineConfig.from_file(path)
    return PipelineConfig()
