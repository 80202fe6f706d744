# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Delimited Record Parser
# Tasks: T0042
# ═══════════════════════════════════════════════════════════════════════

"""
Delimited Record Parser - pipe-delimited input, CSV-style escaped output

Methods:
- parse_line(): Split a raw line on '|' and optionally append provenance
- build_line(): Join fields with '|' quoting fields with '"' or newlines
- unescape_field(): Undo build_line() quoting for one field

Input quoting is never interpreted. Output fields containing a double
quote or a newline are wrapped in double quotes with inner quotes doubled,
even though the delimiter is a pipe. Downstream consumers of the cleaned
files depend on this exact format.
"""

from datetime import datetime
from typing import List, Optional, Sequence

FIELD_DELIMITER = "|"
QUOTE = '"'

# Provenance columns appended to every record of an original export file
SOURCE_FILE_COLUMN = "FileName"
LOAD_TIMESTAMP_COLUMN = "FileLoadDate"
PROVENANCE_COLUMN_COUNT = 2

LOAD_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_load_timestamp(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now()).strftime(LOAD_TIMESTAMP_FORMAT)


def parse_line(line: str,
               is_header: bool,
               source_file_name: str = "",
               append_provenance: bool = False,
               load_timestamp: Optional[str] = None) -> List[str]:
    """
    Split one raw line into fields

    Args:
        line: Raw line without its line terminator
        is_header: True for the header line
        source_file_name: File name written into the FileName column
        append_provenance: Append FileName / FileLoadDate columns
        load_timestamp: Value for FileLoadDate (current time if None)

    Returns:
        List of field strings; an empty line yields [""]
    """
    fields = line.split(FIELD_DELIMITER)

    if append_provenance:
        if is_header:
            fields.extend([SOURCE_FILE_COLUMN, LOAD_TIMESTAMP_COLUMN])
        else:
            fields.extend([source_file_name, load_timestamp or format_load_timestamp()])

    return fields


def _escape_field(value: str) -> str:
    if QUOTE in value or "\n" in value:
        return QUOTE + value.replace(QUOTE, QUOTE * 2) + QUOTE
    return value


def build_line(fields: Sequence[str]) -> str:
    """Join fields with '|', quoting fields that contain '"' or a newline"""
    return FIELD_DELIMITER.join(_escape_field(value) for value in fields)


def unescape_field(value: str) -> str:
    """Reverse the quoting applied by build_line() to a single field"""
    if len(value) >= 2 and value.startswith(QUOTE) and value.endswith(QUOTE):
        return value[1:-1].replace(QUOTE * 2, QUOTE)
    return value
