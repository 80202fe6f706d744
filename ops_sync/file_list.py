# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Required-Files List
# Tasks: T0041
# ═══════════════════════════════════════════════════════════════════════

"""
file_list.py - Parse FileList.txt

Each non-blank line that does not start with '#' has the form

    TableName|C:\\sfmc_ftp\\Export_2532_Contacts.csv

The load phase uses the lines as (table, local file) jobs; the download
phase only needs the distinct file names.
"""

import logging
import ntpath
import re
from pathlib import Path
from typing import List, Union

from .errors import ConfigurationError
from .models import FileJob

logger = logging.getLogger(__name__)


def parse_file_list(text: str, source: str = "<string>") -> List[FileJob]:
    """Parse file list text into jobs; invalid lines are skipped with a warning"""
    jobs: List[FileJob] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split("|")
        if len(parts) != 2:
            logger.warning(f"⚠️ {source}: skipping invalid line: {line}")
            continue
        jobs.append(FileJob(table_name=parts[0].strip(), local_file_path=parts[1].strip()))
    return jobs


def load_file_list(path: Union[str, Path]) -> List[FileJob]:
    """
    Read the job list

    Raises:
        ConfigurationError: File missing or unreadable
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError(f"File list not found: {p}")
    try:
        content = p.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read file list {p}: {e}") from e
    return parse_file_list(content, source=p.name)


def file_name_of(file_path: str) -> str:
    """Base name of a list path; list files may carry Windows paths"""
    return ntpath.basename(file_path)


def required_file_names(jobs: List[FileJob]) -> List[str]:
    """Distinct file names from the job list, first occurrence order"""
    names: List[str] = []
    for job in jobs:
        name = file_name_of(job.local_file_path)
        if name and name not in names:
            names.append(name)
    return names


def file_matches_business_unit(file_name: str, tag: str) -> bool:
    """
    True when the file name carries the business-unit tag

    Accepted forms: '_<tag>_' anywhere in the name, or a 'bu<tag>_' token
    at the start of the name or after '_'. An empty tag matches nothing.
    """
    if not tag:
        return False
    if f"_{tag}_" in file_name:
        return True
    return re.search(rf"(?:^|_)bu{re.escape(tag)}_", file_name) is not None
