# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: SFTP Session
# Tasks: T0045
# ═══════════════════════════════════════════════════════════════════════

"""
SFTP session wrapper around paramiko

Operations used by the download phase: connect, change directory, list
directory, download a file with a byte callback, disconnect.
"""

import logging
from typing import BinaryIO, Callable, List, Optional

import paramiko

from .errors import RemoteTransferError
from .models import RemoteEndpoint

logger = logging.getLogger(__name__)


class RemoteFile:
    """Name and size of a file in the remote folder"""

    def __init__(self, name: str, size: int, full_name: str):
        self.name = name
        self.size = size
        self.full_name = full_name

    def __repr__(self) -> str:
        return f"RemoteFile({self.name!r}, {self.size})"


class SFTPSession:
    """
    One authenticated SFTP session (username/password)

    Use as a context manager so the session is always closed.
    """

    def __init__(self, endpoint: RemoteEndpoint, port: int = 22, timeout: int = 30):
        self.endpoint = endpoint
        self.port = port
        self.timeout = timeout
        self.ssh_client: Optional[paramiko.SSHClient] = None
        self.sftp: Optional[paramiko.SFTPClient] = None

    @classmethod
    def open(cls, endpoint: RemoteEndpoint, port: int = 22, timeout: int = 30) -> "SFTPSession":
        session = cls(endpoint, port=port, timeout=timeout)
        session.connect()
        return session

    def connect(self) -> None:
        logger.info(f"🔌 Connecting to SFTP: {self.endpoint.host}:{self.port} as {self.endpoint.user}")
        try:
            self.ssh_client = paramiko.SSHClient()
            self.ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            self.ssh_client.connect(
                hostname=self.endpoint.host,
                port=self.port,
                username=self.endpoint.user,
                password=self.endpoint.secret,
                timeout=self.timeout,
                look_for_keys=False,
                allow_agent=False,
            )
            self.sftp = self.ssh_client.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            self.close()
            raise RemoteTransferError(f"Cannot connect to {self.endpoint.name} ({self.endpoint.host}): {e}") from e

    def _client(self) -> paramiko.SFTPClient:
        if self.sftp is None:
            raise RemoteTransferError("SFTP session is not connected")
        return self.sftp

    def change_directory(self, remote_path: str) -> None:
        try:
            self._client().chdir(remote_path)
        except (IOError, paramiko.SSHException) as e:
            raise RemoteTransferError(f"Cannot change to remote directory {remote_path}: {e}") from e

    def list_directory(self, remote_path: str = ".") -> List[RemoteFile]:
        try:
            entries = self._client().listdir_attr(remote_path)
        except (IOError, paramiko.SSHException) as e:
            raise RemoteTransferError(f"Cannot list remote directory {remote_path}: {e}") from e
        base = remote_path.rstrip("/")
        relative = base in ("", ".")
        return [
            RemoteFile(entry.filename, entry.st_size or 0,
                       entry.filename if relative else f"{base}/{entry.filename}")
            for entry in entries
        ]

    def download(self, remote_file: RemoteFile, destination: BinaryIO,
                 callback: Optional[Callable[[int, int], None]] = None) -> None:
        """
        Stream a remote file into an open binary file object

        `callback(bytes_transferred, total_bytes)` is called after each
        chunk; an exception raised from it aborts the transfer.
        """
        self._client().getfo(remote_file.full_name, destination, callback=callback)

    def abort(self) -> None:
        """Close the SFTP channel under a running transfer so getfo fails"""
        sftp = self.sftp
        if sftp is not None:
            logger.info(f"Aborting transfer on {self.endpoint.name}")
            sftp.close()

    def close(self) -> None:
        if self.sftp is not None:
            self.sftp.close()
            self.sftp = None
        if self.ssh_client is not None:
            self.ssh_client.close()
            self.ssh_client = None

    def __enter__(self) -> "SFTPSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
