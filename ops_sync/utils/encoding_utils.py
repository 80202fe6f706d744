# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Encoding Normalizer
# Tasks: T0043
# ═══════════════════════════════════════════════════════════════════════

"""
Encoding Normalizer - UTF-16 LE exports to UTF-8 with BOM

The exporter writes UTF-16 little-endian files with a byte-order mark.
The whole file is decoded and written back as UTF-8 with BOM next to
the input as <stem>_utf8<suffix>. Line endings are kept as they are.
"""

import codecs
import logging
from pathlib import Path
from typing import Union

from ..errors import EncodingConversionError

logger = logging.getLogger(__name__)

UTF8_SUFFIX = "_utf8"
SOURCE_ENCODING = "utf-16-le"
TARGET_ENCODING = "utf-8-sig"


def utf8_path_for(input_path: Union[str, Path]) -> Path:
    p = Path(input_path)
    return p.with_name(f"{p.stem}{UTF8_SUFFIX}{p.suffix}")


def decode_export(data: bytes) -> str:
    """
    Decode raw export bytes

    A UTF-16 LE BOM is stripped; a UTF-8 BOM switches to UTF-8 (BOM
    detection wins over the declared encoding); anything else is read as
    UTF-16 LE without BOM.
    """
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8")
    if data.startswith(codecs.BOM_UTF16_LE):
        data = data[len(codecs.BOM_UTF16_LE):]
    return data.decode(SOURCE_ENCODING)


def normalize(input_path: Union[str, Path]) -> Path:
    """
    Re-encode a UTF-16 LE file as UTF-8 with BOM

    Args:
        input_path: Source export file

    Returns:
        Path of the UTF-8 copy

    Raises:
        EncodingConversionError: The file is not valid UTF-16
    """
    input_path = Path(input_path)
    output_path = utf8_path_for(input_path)

    logger.info("▶ Converting encoding")
    logger.info(f"   Input file: {input_path}")
    logger.info(f"   Output file: {output_path}")

    try:
        content = decode_export(input_path.read_bytes())
    except UnicodeDecodeError as e:
        raise EncodingConversionError(f"Cannot decode {input_path.name} as UTF-16 LE: {e}") from e

    output_path.write_bytes(content.encode(TARGET_ENCODING))

    logger.info("   ✅ Successfully converted from UTF-16 LE BOM to UTF-8")
    logger.info(f"   File size: {output_path.stat().st_size:,} bytes")
    return output_path
