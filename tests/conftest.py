"""
Shared fixtures for the OPS pipeline tests
"""

import codecs
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from sqlalchemy import create_engine, text

from ops_sync.config import PipelineConfig, StoredOperation
from ops_sync.errors import RemoteTransferError
from ops_sync.models import RemoteEndpoint
from ops_sync.sftp_client import RemoteFile


def write_utf16(path: Path, content: str) -> Path:
    """Write content the way the business-unit exporter does (UTF-16 LE + BOM)"""
    path.write_bytes(codecs.BOM_UTF16_LE + content.encode("utf-16-le"))
    return path


class FakeSFTPSession:
    """
    In-memory stand-in for SFTPSession, streaming files in small chunks

    With `stall_after`, the transfer hangs after that many bytes until
    abort() is called (or `stall_timeout` passes), like a dead link.
    """

    def __init__(self, endpoint: RemoteEndpoint, files: Dict[str, bytes],
                 chunk_size: int = 4,
                 on_chunk: Optional[Callable[[str, int], None]] = None,
                 stall_after: Optional[int] = None,
                 stall_timeout: float = 5.0):
        self.endpoint = endpoint
        self.files = files
        self.chunk_size = chunk_size
        self.on_chunk = on_chunk
        self.stall_after = stall_after
        self.stall_timeout = stall_timeout
        self.aborted = threading.Event()
        self.cwd = ""
        self.started: List[str] = []
        self.closed = False

    def change_directory(self, remote_path: str) -> None:
        self.cwd = remote_path

    def list_directory(self, remote_path: str = ".") -> List[RemoteFile]:
        return [RemoteFile(name, len(data), name) for name, data in self.files.items()]

    def download(self, remote_file: RemoteFile, destination, callback=None) -> None:
        self.started.append(remote_file.name)
        data = self.files[remote_file.name]
        done = 0
        for start in range(0, len(data), self.chunk_size):
            chunk = data[start:start + self.chunk_size]
            destination.write(chunk)
            done += len(chunk)
            if self.on_chunk:
                self.on_chunk(remote_file.name, done)
            if callback:
                callback(done, len(data))
            if self.stall_after is not None and done >= self.stall_after:
                self.aborted.wait(self.stall_timeout)
            if self.aborted.is_set():
                raise OSError("Socket is closed")

    def abort(self) -> None:
        self.aborted.set()

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FakeSessionFactory:
    """Session factory keyed by endpoint name; unknown endpoints fail to connect"""

    def __init__(self, files_by_endpoint: Dict[str, Dict[str, bytes]], **session_kwargs):
        self.files_by_endpoint = files_by_endpoint
        self.session_kwargs = session_kwargs
        self.sessions: List[FakeSFTPSession] = []

    def __call__(self, endpoint: RemoteEndpoint) -> FakeSFTPSession:
        if endpoint.name not in self.files_by_endpoint:
            raise RemoteTransferError(f"Cannot connect to {endpoint.name}")
        session = FakeSFTPSession(endpoint, self.files_by_endpoint[endpoint.name], **self.session_kwargs)
        self.sessions.append(session)
        return session


@pytest.fixture
def local_dir(tmp_path):
    path = tmp_path / "sfmc_ftp"
    path.mkdir()
    return path


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ops.db'}"


@pytest.fixture
def engine(sqlite_url):
    engine = create_engine(sqlite_url)
    with engine.begin() as conn:
        conn.execute(text(
            'CREATE TABLE contacts ("Id" TEXT PRIMARY KEY, "Name" TEXT, "City" TEXT, '
            '"FileName" TEXT, "FileLoadDate" TEXT)'
        ))
        conn.execute(text(
            'CREATE TABLE calls ("CallId" TEXT PRIMARY KEY, "Note" TEXT, '
            '"FileName" TEXT, "FileLoadDate" TEXT)'
        ))
        conn.execute(text('CREATE TABLE maintenance_log ("step" TEXT)'))
    yield engine
    engine.dispose()


@pytest.fixture
def make_config(tmp_path, local_dir, sqlite_url):
    """Build a PipelineConfig pointing at tmp files"""

    def _make(connections: str = "", file_list: str = "", **overrides) -> PipelineConfig:
        connections_file = tmp_path / "ftp_connections.txt"
        connections_file.write_text(connections, encoding="utf-8")
        list_file = tmp_path / "FileList.txt"
        list_file.write_text(file_list, encoding="utf-8")
        settings = dict(
            database_url=sqlite_url,
            local_directory=str(local_dir),
            connections_file=str(connections_file),
            file_list=str(list_file),
            poll_interval=0.01,
            maintenance_operations=[
                StoredOperation(name="truncate_import",
                                statement="INSERT INTO maintenance_log (step) VALUES ('truncate')"),
            ],
            consolidation_operation=StoredOperation(
                name="consolidate",
                statement="INSERT INTO maintenance_log (step) VALUES ('consolidate')",
            ),
        )
        settings.update(overrides)
        return PipelineConfig(**settings)

    return _make
