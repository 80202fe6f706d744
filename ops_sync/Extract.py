# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - OPS PIPELINE: EXTRACT PHASE (SFTP DOWNLOAD)
# Tasks: T0041, T0044, T0045
# ═══════════════════════════════════════════════════════════════════════

"""
Extract.py - SFTP Download Orchestrator

TASKS IMPLEMENTED:
- T0041: Connection directory + file list driven downloads
- T0044: Pipeline-global progress (cleanup 5%, downloads 95%)
- T0045: Cooperative cancellation with partial-file cleanup

Responsibilities:
- Delete previous *.csv downloads from the local staging directory
- For each business-unit endpoint, connect over SFTP, list the remote
  folder once and stream every required file that is present
- Report byte-level progress while a transfer runs on a worker thread
- Skip missing remote files and failed endpoints without aborting the run

State per run:
    Idle → CleaningLocal → PerEndpoint(Connecting → Listing →
    PerFile(Transferring) → Disconnecting) → Done | Cancelled | Failed
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import paramiko

from .config import PipelineConfig, load_config
from .connection_directory import load_connection_directory
from .errors import ConfigurationError, OperationCancelled, RemoteTransferError
from .file_list import file_matches_business_unit, load_file_list, required_file_names
from .models import RemoteEndpoint, RunResult
from .sftp_client import RemoteFile, SFTPSession
from .utils.cancellation import CancellationToken
from .utils.notifications import PipelineNotifier
from .utils.progress_utils import (
    DOWNLOAD_CLEANUP,
    DOWNLOAD_STAGE_WEIGHTS,
    DOWNLOAD_TRANSFER,
    ProgressAggregator,
    map_slice_percent,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SessionFactory = Callable[[RemoteEndpoint], SFTPSession]

# Re-report an unchanged byte count at least this often (seconds)
PROGRESS_HEARTBEAT = 1.0


def format_bytes(num_bytes: int) -> str:
    """1536 → '1.5 KB'"""
    sizes = ["B", "KB", "MB", "GB"]
    length = float(num_bytes)
    order = 0
    while length >= 1024 and order < len(sizes) - 1:
        order += 1
        length /= 1024
    return f"{length:.2f}".rstrip("0").rstrip(".") + f" {sizes[order]}"


class FileDownloader:
    """
    TEAM 1 - SFTP Download Handler

    Endpoints and files are processed strictly one at a time. Only the
    byte transfer itself runs on a worker thread so progress can be polled.
    """

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 session_factory: Optional[SessionFactory] = None,
                 notifier: Optional[PipelineNotifier] = None):
        """
        Initialize downloader

        Args:
            config: Pipeline settings (default: environment / $OPS_CONFIG)
            session_factory: Opens a connected session for an endpoint
            notifier: Progress/log channels shared with observers
        """
        self.config = config or load_config()
        self.local_dir = self.config.local_path
        self.session_factory = session_factory or self._open_session
        self.notifier = notifier or PipelineNotifier(logger)
        self.progress = ProgressAggregator(self.notifier, DOWNLOAD_STAGE_WEIGHTS)
        self.download_stats: Dict[str, Any] = {}
        self.warnings: List[str] = []

        self.local_dir.mkdir(parents=True, exist_ok=True)

    def _open_session(self, endpoint: RemoteEndpoint) -> SFTPSession:
        return SFTPSession.open(endpoint, port=self.config.sftp_port, timeout=self.config.sftp_timeout)

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.notifier.warning(message)

    # ========================================
    # Step 1: Clean local directory
    # ========================================
    def clean_local_directory(self, token: Optional[CancellationToken] = None) -> Dict[str, int]:
        """
        Delete previous downloads (managed extension only)

        Each failed deletion is logged and counted; the phase continues.

        Returns:
            {'found': n, 'deleted': n, 'failed': n}
        """
        token = token or CancellationToken()
        extension = self.config.managed_extension
        self.notifier.info(f"Scanning for existing {extension} files in: {self.local_dir}")

        files = sorted(p for p in self.local_dir.glob(f"*{extension}") if p.is_file())
        stats = {'found': len(files), 'deleted': 0, 'failed': 0}

        if not files:
            self.notifier.info(f"No existing {extension} files found to delete.")
            self.progress.report(DOWNLOAD_CLEANUP, 100, scope_label="Directory Cleanup",
                                 step_label="Cleanup",
                                 message="Directory cleanup completed - no files to delete")
            return stats

        self.notifier.info(f"Found {len(files)} {extension} files to delete")

        for path in files:
            if token.is_cancelled:
                self.notifier.info("File deletion cancelled by user")
                return stats
            try:
                path.unlink()
                stats['deleted'] += 1
                self.notifier.info(f"Deleted: {path.name}")
                self.progress.report(
                    DOWNLOAD_CLEANUP, stats['deleted'] * 100 / len(files),
                    scope_label=path.name, step_label="Cleanup",
                    message=f"Deleting files: {stats['deleted']}/{len(files)} - {path.name}",
                )
            except OSError as e:
                stats['failed'] += 1
                self.notifier.warning(f"Failed to delete {path.name}: {e}")

        self.notifier.info(f"Directory cleanup completed: {stats['deleted']} files deleted, "
                           f"{stats['failed']} failed")
        self.progress.report(DOWNLOAD_CLEANUP, 100, scope_label="Directory Cleanup",
                             step_label="Cleanup",
                             message=f"Directory cleanup completed - {stats['deleted']} files deleted")
        return stats

    # ========================================
    # Step 2: Download per endpoint
    # ========================================
    def _report_file(self, index: int, total: int, name: str, file_percent: float,
                     message: str) -> None:
        self.progress.report(
            DOWNLOAD_TRANSFER, map_slice_percent(index, total, file_percent),
            scope_label=name, step_label="Downloading", message=message,
            current_index=index, total_count=total,
        )

    @staticmethod
    def _remove_partial(local_path: Path) -> None:
        if local_path.exists():
            local_path.unlink()

    def download_file(self,
                      session: SFTPSession,
                      remote_file: RemoteFile,
                      local_path: Path,
                      index: int,
                      total: int,
                      token: CancellationToken) -> bool:
        """
        Stream one file to local storage, polling progress every tick

        The token is checked at each tick. On cancellation the session's
        channel is aborted and the worker is not waited for.

        Returns:
            True when the file was downloaded, False on a transfer error

        Raises:
            OperationCancelled: Token fired; the partial file is removed
        """
        transferred = {'bytes': 0}

        def on_chunk(done: int, _total: int) -> None:
            transferred['bytes'] = done
            if token.is_cancelled:
                raise OperationCancelled(f"Download of {remote_file.name} cancelled")

        size = remote_file.size
        last_reported = -1
        last_report_time = time.monotonic()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sftp-transfer")

        try:
            with open(local_path, "wb") as destination:
                future = pool.submit(session.download, remote_file, destination, on_chunk)
                while True:
                    try:
                        future.result(timeout=self.config.poll_interval)
                        break
                    except FutureTimeout:
                        pass

                    if token.is_cancelled:
                        session.abort()
                        raise OperationCancelled(f"Download of {remote_file.name} cancelled")

                    current = transferred['bytes']
                    now = time.monotonic()
                    if current != last_reported or now - last_report_time > PROGRESS_HEARTBEAT:
                        percent = int(current * 100 / size) if size else 0
                        self._report_file(
                            index, total, remote_file.name, percent,
                            f"File {index}/{total}: {remote_file.name} - "
                            f"{format_bytes(current)}/{format_bytes(size)} ({percent}%)",
                        )
                        last_reported = current
                        last_report_time = now

            token.raise_if_cancelled()

        except OperationCancelled:
            self._remove_partial(local_path)
            raise
        except (OSError, paramiko.SSHException, RemoteTransferError) as e:
            self._remove_partial(local_path)
            self._warn(f"Error downloading {remote_file.name}: {e}")
            return False
        finally:
            pool.shutdown(wait=False)

        self._report_file(index, total, remote_file.name, 100,
                          f"File {index}/{total}: {remote_file.name} - "
                          f"{format_bytes(size)}/{format_bytes(size)} (100%)")
        self.notifier.info(f"Downloaded: {remote_file.name} - {format_bytes(size)}")
        return True

    def download_endpoint(self,
                          endpoint: RemoteEndpoint,
                          file_names: List[str],
                          token: CancellationToken,
                          first_index: int,
                          total: int) -> int:
        """
        Connect, list once, download each required file present remotely

        Args:
            endpoint: Remote endpoint
            file_names: Required files carrying this endpoint's tag
            token: Cancellation token
            first_index: 1-based global index of the first file
            total: Total number of required files in the run

        Returns:
            Number of files downloaded

        Raises:
            RemoteTransferError: Connection-level failure for this endpoint
            OperationCancelled: Token fired
        """
        self.notifier.info(f"Connecting to {endpoint.name} ({endpoint.host})...")
        downloaded = 0

        with self.session_factory(endpoint) as session:
            self.notifier.info(f"Connected successfully to {endpoint.name}")

            if endpoint.remote_path:
                session.change_directory(endpoint.remote_path)
                self.notifier.info(f"Changed to remote directory: {endpoint.remote_path}")

            remote_files = {f.name: f for f in session.list_directory(".")}
            self.notifier.info(f"Found {len(remote_files)} files in remote directory")

            for offset, name in enumerate(file_names):
                token.raise_if_cancelled()
                index = first_index + offset

                remote_file = remote_files.get(name)
                if remote_file is None:
                    self._warn(f"File not found on server: {name}")
                    self._report_file(index, total, name, 100, f"File {index}/{total}: {name} - not found")
                    self.download_stats['missing'] += 1
                    continue

                local_path = self.local_dir / name
                self.notifier.info(f"Downloading: {name} ({format_bytes(remote_file.size)})")
                if self.download_file(session, remote_file, local_path, index, total, token):
                    downloaded += 1
                    self.download_stats['downloaded'] += 1
                    self.download_stats['bytes'] += remote_file.size
                else:
                    self.download_stats['failed'] += 1

        self.notifier.info(f"Disconnected from {endpoint.name}")
        return downloaded

    # ========================================
    # Top-level run
    # ========================================
    def download_all(self, token: Optional[CancellationToken] = None) -> RunResult:
        """
        Run the whole download phase

        Returns:
            RunResult (succeeded / cancelled / failed)
        """
        token = token or CancellationToken()
        self.progress = ProgressAggregator(self.notifier, DOWNLOAD_STAGE_WEIGHTS)
        self.warnings = []
        self.download_stats = {
            'start_time': datetime.now(),
            'endpoints': 0,
            'endpoints_failed': 0,
            'required_files': 0,
            'downloaded': 0,
            'missing': 0,
            'failed': 0,
            'bytes': 0,
        }

        self.notifier.info(f"Starting download process at {datetime.now():%Y-%m-%d %H:%M:%S}")
        self.notifier.info(f"Local directory: {self.local_dir}")

        try:
            endpoints = load_connection_directory(self.config.connections_file)
            required = required_file_names(load_file_list(self.config.file_list))
        except ConfigurationError as e:
            self.notifier.error(str(e))
            return RunResult.failed(str(e), stats=self._finish_stats())

        self.notifier.info("\n=== STEP 1: CLEANING LOCAL DIRECTORY ===")
        self.download_stats['cleanup'] = self.clean_local_directory(token)
        if token.is_cancelled:
            self.notifier.info("Download cancelled by user")
            return RunResult.cancelled("Download cancelled by user", stats=self._finish_stats())

        self.notifier.info("\n=== STEP 2: DOWNLOADING FILES ===")
        if not endpoints:
            message = "No FTP connections found in configuration file."
            self.notifier.error(message)
            return RunResult.failed(message, stats=self._finish_stats())
        if not required:
            message = "No files to download. Please check the file list."
            self.notifier.error(message)
            return RunResult.failed(message, stats=self._finish_stats())

        total = len(required)
        self.download_stats['endpoints'] = len(endpoints)
        self.download_stats['required_files'] = total
        self.notifier.info(f"Found {len(endpoints)} FTP connections")
        self.notifier.info(f"Need to download {total} files total")

        next_index = 1
        for endpoint in endpoints:
            if token.is_cancelled:
                break

            files = [f for f in required if file_matches_business_unit(f, endpoint.business_unit_tag)]
            if not files:
                self.notifier.info(f"No files to download for {endpoint.name}")
                continue

            try:
                self.download_endpoint(endpoint, files, token, next_index, total)
            except OperationCancelled:
                break
            except (RemoteTransferError, paramiko.SSHException, OSError) as e:
                self.download_stats['endpoints_failed'] += 1
                self._warn(f"Error connecting to {endpoint.name}: {e}")
            next_index += len(files)

        if token.is_cancelled:
            self.notifier.info("Download cancelled by user")
            return RunResult.cancelled("Download cancelled by user", stats=self._finish_stats())

        self.progress.complete("All downloads finished")
        self.notifier.info(f"\nDownload completed successfully at {datetime.now():%Y-%m-%d %H:%M:%S}")
        return RunResult.complete(
            f"{self.download_stats['downloaded']} of {total} files downloaded",
            warnings=self.warnings,
            stats=self._finish_stats(),
        )

    def _finish_stats(self) -> Dict[str, Any]:
        self.download_stats['end_time'] = datetime.now()
        start = self.download_stats.get('start_time') or self.download_stats['end_time']
        self.download_stats['duration_seconds'] = (self.download_stats['end_time'] - start).total_seconds()
        return dict(self.download_stats)

    def run(self, token: Optional[CancellationToken] = None) -> RunResult:
        """download_all() with unexpected exceptions converted to an Error result"""
        try:
            return self.download_all(token)
        except Exception as e:
            logger.exception("❌ Fatal error during download")
            self.notifier.error(f"Fatal error during download: {e}")
            return RunResult.error(f"Download error: {e}")


# ========================================
# Airflow-compatible functions
# ========================================

def download_all_files(**context) -> Dict[str, Any]:
    """
    Airflow task callable: Download all required files

    Returns:
        RunResult as a JSON-friendly dict (XCom)
    """
    downloader = FileDownloader()
    result = downloader.run()
    if not result.succeeded:
        raise RuntimeError(f"{result.status}: {result.message}")
    return result.model_dump(mode="json")


# ========================================
# Main execution
# ========================================

if __name__ == "__main__":
    print("\n" + "="*70)
    print("TEAM 1 - OPS PIPELINE: EXTRACT PHASE")
    print("="*70 + "\n")

    result = FileDownloader().run()

    print(f"\n📊 DOWNLOAD RESULT: {result.status} - {result.message}")
    for warning in result.warnings:
        print(f"   ⚠️ {warning}")
