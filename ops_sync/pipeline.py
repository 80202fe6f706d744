# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Sync Pipeline Orchestrator
# Tasks: T0045, T0046
# ═══════════════════════════════════════════════════════════════════════

"""
pipeline.py - Download + Load orchestration for observers

Both phases share one notifier, so a single subscriber sees progress and
log events for the whole run. Runs can be started on a background thread;
the caller keeps the CancellationToken and the returned Future.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from sqlalchemy.engine import Engine

from .Extract import FileDownloader, SessionFactory
from .Load import DatabaseLoader
from .config import PipelineConfig, load_config
from .models import RunResult
from .utils.cancellation import CancellationToken
from .utils.notifications import PipelineNotifier

logger = logging.getLogger(__name__)


class SyncPipeline:
    """Runs the download phase, the load phase, or both in sequence"""

    ACTIONS = ("download", "load", "run")

    def __init__(self,
                 config: Optional[PipelineConfig] = None,
                 engine: Optional[Engine] = None,
                 session_factory: Optional[SessionFactory] = None,
                 notifier: Optional[PipelineNotifier] = None):
        self.config = config or load_config()
        self.notifier = notifier or PipelineNotifier(logger)
        self.downloader = FileDownloader(self.config, session_factory=session_factory,
                                         notifier=self.notifier)
        self.loader = DatabaseLoader(self.config, engine=engine, notifier=self.notifier)
        self._executor: Optional[ThreadPoolExecutor] = None

    def download(self, token: Optional[CancellationToken] = None) -> RunResult:
        return self.downloader.run(token)

    def load(self, token: Optional[CancellationToken] = None) -> RunResult:
        return self.loader.run(token)

    def run(self, token: Optional[CancellationToken] = None) -> Dict[str, RunResult]:
        """
        Download, then load if the download succeeded

        Returns:
            {'download': RunResult, 'load': RunResult (absent if skipped)}
        """
        token = token or CancellationToken()
        results = {'download': self.download(token)}
        if not results['download'].succeeded:
            logger.warning(f"⚠️ Load skipped: download {results['download'].status.lower()}")
            return results
        results['load'] = self.load(token)
        return results

    def start(self, action: str, token: CancellationToken) -> Future:
        """
        Start an action on a background thread

        Args:
            action: 'download', 'load' or 'run'
            token: Token the caller uses to cancel

        Returns:
            Future resolving to the action's result
        """
        if action not in self.ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ops-sync")
        return self._executor.submit(getattr(self, action), token)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.loader.disconnect()
