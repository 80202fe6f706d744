# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - OPS PIPELINE: LOAD PHASE
# Tasks: T0018, T0021, T0044, T0045
# ═══════════════════════════════════════════════════════════════════════

"""
Load.py - Database Loading Module

TASKS IMPLEMENTED:
- T0018: Bulk load operations - via utils/staged_loader.py
- T0021: Upsert logic (merge on first column) - via utils/staged_loader.py
- T0044: Pipeline-global progress (maintenance 10%, files 80%,
         consolidation 10%)
- T0045: Cooperative cancellation

Responsibilities:
- Run the maintenance operations (truncate import/sfmc tables)
- For each FileList.txt job: normalize encoding, repair records and
  merge the cleaned file into its destination table
- Run the master consolidation operation
- Skip failed or missing files without aborting the run

Target: SQL Server (HERMES / InsMedOPS, Windows authentication)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .Transform import FileTransformer
from .config import PipelineConfig, StoredOperation, load_config
from .errors import (
    ConfigurationError,
    EncodingConversionError,
    MalformedRecordError,
    OperationCancelled,
    StagedLoadError,
)
from .file_list import load_file_list
from .models import FileJob, RunResult
from .utils.cancellation import CancellationToken
from .utils.notifications import PipelineNotifier
from .utils.progress_utils import (
    FILE_STEP_DONE,
    FILE_STEP_ENCODING,
    FILE_STEP_LOAD,
    FILE_STEP_REPAIR,
    LOAD_CONSOLIDATION,
    LOAD_FILES,
    LOAD_MAINTENANCE,
    LOAD_STAGE_WEIGHTS,
    ProgressAggregator,
    map_slice_percent,
)
from .utils.staged_loader import StagedLoader, apply_command_timeout

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_database_engine(config: PipelineConfig) -> Engine:
    """Engine for config.database_url with the login timeout applied"""
    url = make_url(config.database_url)
    backend = url.get_backend_name()
    connect_args: Dict[str, Any] = {}
    if backend == "mssql":
        connect_args['timeout'] = config.connect_timeout
    elif backend == "postgresql":
        connect_args['connect_timeout'] = config.connect_timeout
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


class DatabaseLoader:
    """
    TEAM 1 - File-to-Database Load Handler

    Jobs run one at a time in list order. Step progress is reported here
    around plain FileTransformer / StagedLoader calls.
    """

    STEP_LABELS = {
        FileTransformer.STEP_ENCODING: ("Converting Encoding", FILE_STEP_ENCODING),
        FileTransformer.STEP_REPAIR: ("Cleaning Data", FILE_STEP_REPAIR),
    }

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 engine: Optional[Engine] = None,
                 notifier: Optional[PipelineNotifier] = None):
        """
        Initialize loader

        Args:
            config: Pipeline settings (default: environment / $OPS_CONFIG)
            engine: SQLAlchemy engine (default: built from config.database_url)
            notifier: Progress/log channels shared with observers
        """
        self.config = config or load_config()
        self.engine = engine
        self.notifier = notifier or PipelineNotifier(logger)
        self.progress = ProgressAggregator(self.notifier, LOAD_STAGE_WEIGHTS)
        self.transformer = FileTransformer()
        self.staged_loader = StagedLoader(
            batch_size=self.config.batch_size,
            bulk_copy_timeout=self.config.bulk_copy_timeout,
            merge_timeout=self.config.merge_timeout,
        )
        self.load_stats: Dict[str, Dict[str, Any]] = {}
        self.warnings: List[str] = []

    def connect(self) -> Engine:
        """Create the engine on first use"""
        if self.engine is None:
            self.engine = create_database_engine(self.config)
            logger.info(f"🔌 Database engine created ({self.engine.url.get_backend_name()})")
        return self.engine

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.notifier.warning(message)

    # ========================================
    # Stored operations
    # ========================================
    def run_operation(self, operation: StoredOperation) -> None:
        """
        Execute one maintenance/consolidation operation and commit

        Raises:
            SQLAlchemyError: The operation failed
        """
        with self.connect().connect() as connection:
            apply_command_timeout(connection, operation.timeout)
            connection.execute(text(operation.sql(connection.dialect.name)))
            connection.commit()

    def run_maintenance(self, token: CancellationToken) -> int:
        """
        Run every maintenance operation independently (0-10%)

        Returns:
            Number of operations that succeeded
        """
        operations = self.config.maintenance_operations
        succeeded = 0
        for i, operation in enumerate(operations, 1):
            token.raise_if_cancelled()
            self.progress.report(LOAD_MAINTENANCE, (i - 1) * 100 / len(operations),
                                 scope_label="Database Maintenance", step_label=operation.name,
                                 message=f"Executing {operation.name}...")
            self.notifier.info(f"Executing stored procedure: {operation.name}")
            try:
                self.run_operation(operation)
                succeeded += 1
                self.notifier.info(f"✅ {operation.name} completed successfully")
            except SQLAlchemyError as e:
                logger.exception(f"❌ {operation.name} failed")
                self._warn(f"Warning: Error executing {operation.name}: {e}")

        self.progress.report(LOAD_MAINTENANCE, 100, scope_label="Database Maintenance",
                             step_label="Done", message="Database maintenance completed")
        return succeeded

    def run_consolidation(self) -> bool:
        """Run the consolidation operation (90-100%); failure is a warning"""
        operation = self.config.consolidation_operation
        if operation is None:
            self.progress.report(LOAD_CONSOLIDATION, 100, scope_label="Data Consolidation",
                                 step_label="Skipped", message="No consolidation configured")
            return True

        self.progress.report(LOAD_CONSOLIDATION, 0, scope_label="Data Consolidation",
                             step_label=operation.name,
                             message=f"Executing {operation.name}...")
        self.notifier.info(f"Executing stored procedure: {operation.name}")
        try:
            self.run_operation(operation)
        except SQLAlchemyError as e:
            logger.exception(f"❌ {operation.name} failed")
            self._warn(f"Warning: Error executing {operation.name}: {e}")
            return False

        self.notifier.info(f"✅ {operation.name} completed successfully")
        self.progress.report(LOAD_CONSOLIDATION, 100, scope_label="Data Consolidation",
                             step_label="Done", message="Master consolidation completed")
        return True

    # ========================================
    # Per-file processing
    # ========================================
    def _report_step(self, index: int, total: int, name: str, step_label: str,
                     step_percent: float) -> None:
        self.progress.report(
            LOAD_FILES, map_slice_percent(index, total, step_percent),
            scope_label=name, step_label=step_label,
            current_index=index, total_count=total,
        )

    def process_job(self, job: FileJob, index: int, total: int) -> Dict[str, Any]:
        """
        Transform and load one file

        Raises:
            EncodingConversionError, MalformedRecordError, StagedLoadError
        """
        file_path = Path(job.local_file_path)
        stats: Dict[str, Any] = {
            'table': job.table_name,
            'file': file_path.name,
            'start_time': datetime.now(),
            'success': False,
        }
        self.load_stats[f"{index}:{job.table_name}"] = stats

        def on_step(step: str) -> None:
            label, percent = self.STEP_LABELS[step]
            self._report_step(index, total, file_path.name, label, percent)

        cleaned_path, transform_stats = self.transformer.transform_file(file_path, on_step=on_step)
        stats['rows_processed'] = transform_stats['total_rows_processed']
        stats['rows_cleaned'] = transform_stats['rows_cleaned']
        stats['final_row_count'] = transform_stats['final_row_count']

        self._report_step(index, total, file_path.name, "Uploading to SQL", FILE_STEP_LOAD)
        stats['rows_affected'] = self.staged_loader.load_file(
            self.connect(), job.table_name, cleaned_path,
            unescape=self.config.unescape_cleaned_fields,
        )

        stats['success'] = True
        stats['end_time'] = datetime.now()
        stats['duration_seconds'] = (stats['end_time'] - stats['start_time']).total_seconds()
        self._report_step(index, total, file_path.name, "Completed", FILE_STEP_DONE)
        self.notifier.info(f"✅ Successfully processed {file_path.name}: "
                           f"{stats['rows_affected']:,} records uploaded to {job.table_name}")
        return stats

    def process_jobs(self, jobs: List[FileJob], token: CancellationToken) -> int:
        """
        Process jobs in order; failures are logged and skipped

        Returns:
            Number of files loaded
        """
        total = len(jobs)
        loaded = 0
        for index, job in enumerate(jobs, 1):
            token.raise_if_cancelled()
            file_name = Path(job.local_file_path).name

            self.notifier.info("\n" + "="*70)
            self.notifier.info(f"Processing file {index}/{total}: {file_name} → {job.table_name}")

            if not Path(job.local_file_path).is_file():
                self._warn(f"File not found: {job.local_file_path}")
                self._report_step(index, total, file_name, "Skipped", FILE_STEP_DONE)
                continue

            try:
                self.process_job(job, index, total)
                loaded += 1
            except (EncodingConversionError, MalformedRecordError, StagedLoadError, OSError) as e:
                logger.exception(f"❌ Error processing {file_name}")
                stats = self.load_stats.get(f"{index}:{job.table_name}")
                if stats is not None:
                    stats['error'] = str(e)
                    stats['end_time'] = datetime.now()
                self._warn(f"Error processing {file_name}: {e}")

        return loaded

    # ========================================
    # Top-level run
    # ========================================
    def process_all(self, token: Optional[CancellationToken] = None) -> RunResult:
        """
        Run the whole load phase

        Returns:
            RunResult (succeeded / cancelled / failed)
        """
        token = token or CancellationToken()
        self.progress = ProgressAggregator(self.notifier, LOAD_STAGE_WEIGHTS)
        self.warnings = []
        self.load_stats = {}
        started = datetime.now()

        logger.info("\n" + "="*70)
        logger.info("TEAM 1 - LOAD PHASE: Loading Files to SQL Server")
        logger.info("="*70 + "\n")

        try:
            jobs = load_file_list(self.config.file_list)
        except ConfigurationError as e:
            self.notifier.error(str(e))
            return RunResult.failed(str(e))

        if not jobs:
            message = "No files to process. Please check the file list."
            self.notifier.error(message)
            return RunResult.failed(message)

        self.notifier.info(f"Found {len(jobs)} files to process")

        try:
            self.notifier.info("\n=== STEP 1: DATABASE MAINTENANCE ===")
            self.run_maintenance(token)

            self.notifier.info("\n=== STEP 2: PROCESSING FILES ===")
            loaded = self.process_jobs(jobs, token)

            token.raise_if_cancelled()
            self.notifier.info("\n=== STEP 3: DATA CONSOLIDATION ===")
            self.run_consolidation()
        except OperationCancelled:
            self.notifier.info("Operation cancelled by user")
            return RunResult.cancelled("Operation cancelled by user", stats=self._summary(started))

        self.progress.complete("All files processed")
        logger.info("-"*50)
        logger.info(f"✅ LOAD COMPLETE: {loaded} of {len(jobs)} files loaded")
        logger.info("-"*50 + "\n")
        return RunResult.complete(
            f"{loaded} of {len(jobs)} files loaded",
            warnings=self.warnings,
            stats=self._summary(started),
        )

    def _summary(self, started: datetime) -> Dict[str, Any]:
        ended = datetime.now()
        return {
            'start_time': started,
            'end_time': ended,
            'duration_seconds': (ended - started).total_seconds(),
            'files': {key: dict(value) for key, value in self.load_stats.items()},
            'total_rows_affected': sum(s.get('rows_affected', 0) for s in self.load_stats.values()),
        }

    def run(self, token: Optional[CancellationToken] = None) -> RunResult:
        """process_all() with unexpected exceptions converted to an Error result"""
        try:
            return self.process_all(token)
        except Exception as e:
            logger.exception("❌ Fatal error during processing")
            self.notifier.error(f"Fatal error during processing: {e}")
            return RunResult.error(f"Processing error: {e}")

    def get_load_summary(self) -> pd.DataFrame:
        """Get summary of load results"""
        if not self.load_stats:
            return pd.DataFrame()

        records = []
        for stats in self.load_stats.values():
            records.append({
                'Table': stats.get('table', ''),
                'File': stats.get('file', ''),
                'Rows_Processed': stats.get('rows_processed', 0),
                'Rows_Cleaned': stats.get('rows_cleaned', 0),
                'Final_Rows': stats.get('final_row_count', 0),
                'Rows_Affected': stats.get('rows_affected', 0),
                'Duration_Sec': stats.get('duration_seconds', 0),
                'Success': stats.get('success', False)
            })

        return pd.DataFrame(records)

    def disconnect(self):
        """Close database connection"""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Database connection closed")


# ========================================
# Airflow-compatible functions
# ========================================

def process_all_files(**context) -> Dict[str, Any]:
    """
    Airflow task callable: Transform and load every listed file

    Returns:
        RunResult as a JSON-friendly dict (XCom)
    """
    loader = DatabaseLoader()
    try:
        result = loader.run()
    finally:
        loader.disconnect()
    if not result.succeeded:
        raise RuntimeError(f"{result.status}: {result.message}")
    return result.model_dump(mode="json")


# ========================================
# Main execution
# ========================================

if __name__ == "__main__":
    print("\n" + "="*70)
    print("TEAM 1 - OPS PIPELINE: LOAD PHASE")
    print("="*70 + "\n")

    loader = DatabaseLoader()
    try:
        result = loader.run()
    finally:
        loader.disconnect()

    print(f"\n📊 LOAD RESULT: {result.status} - {result.message}")
    summary = loader.get_load_summary()
    if not summary.empty:
        print(summary.to_string(index=False))
    for warning in result.warnings:
        print(f"   ⚠️ {warning}")
