# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Remote Connection Directory
# Tasks: T0041
# ═══════════════════════════════════════════════════════════════════════

"""
connection_directory.py - Parse the SFTP connection directory

Format (INI-like):

    [bu2532 - HCP - Brenso DSA]
    protocol=sftp
    host=sftp.example.com
    user=export
    pwd=secret
    remotefolder=/Export

The business-unit tag comes from the section name: the part before the
first '-', trimmed, must start with 'bu'; the rest is the tag ('2532').
Other section names get an empty tag.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import ConfigurationError
from .models import RemoteEndpoint

logger = logging.getLogger(__name__)

BUSINESS_UNIT_PREFIX = "bu"

# Directory key → RemoteEndpoint field
KEY_FIELDS = {
    'protocol': 'protocol',
    'host': 'host',
    'user': 'user',
    'pwd': 'secret',
    'remotefolder': 'remote_path',
}


def business_unit_tag(section_name: str) -> str:
    """'bu2532 - HCP - X' → '2532'; anything else → ''"""
    head = section_name.split("-", 1)[0].strip()
    if head.startswith(BUSINESS_UNIT_PREFIX):
        return head[len(BUSINESS_UNIT_PREFIX):]
    return ""


def parse_connection_directory(text: str, source: str = "<string>") -> List[RemoteEndpoint]:
    """
    Parse connection directory text into endpoints (file order kept)

    Malformed lines are skipped with a warning.
    """
    endpoints: List[RemoteEndpoint] = []
    current: Optional[Dict[str, str]] = None

    def flush() -> None:
        if current is not None:
            endpoints.append(RemoteEndpoint(**current))

    for line_number, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith(";"):
            continue

        if line.startswith("[") and line.endswith("]"):
            flush()
            name = line.strip("[]").strip()
            current = {'name': name, 'business_unit_tag': business_unit_tag(name)}
            continue

        if current is None:
            logger.warning(f"⚠️ {source}:{line_number}: line outside any [section] ignored")
            continue

        if "=" not in line:
            logger.warning(f"⚠️ {source}:{line_number}: expected key=value, line ignored")
            continue

        key, value = line.split("=", 1)
        field = KEY_FIELDS.get(key.strip().lower())
        if field is None:
            logger.warning(f"⚠️ {source}:{line_number}: unknown key '{key.strip()}' ignored")
            continue
        current[field] = value.strip()

    flush()
    return endpoints


def load_connection_directory(path: Union[str, Path]) -> List[RemoteEndpoint]:
    """
    Read and parse the connection directory file

    Raises:
        ConfigurationError: File missing or unreadable
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"FTP connections file not found: {p}")
    try:
        content = p.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read FTP connections file {p}: {e}") from e

    endpoints = parse_connection_directory(content, source=p.name)
    logger.info(f"   Loaded {len(endpoints)} FTP connections from {p.name}")
    return endpoints
