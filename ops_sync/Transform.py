# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - OPS PIPELINE: TRANSFORM PHASE
# Tasks: T0042, T0043
# ═══════════════════════════════════════════════════════════════════════

"""
Transform.py - Export File Preparation

TASKS IMPLEMENTED:
- T0042: UTF-16 LE → UTF-8 re-encoding - via utils/encoding_utils.py
- T0043: Newline-split record repair - via utils/record_repair.py

Responsibilities:
- Convert a downloaded export (X.csv) to UTF-8 (X_utf8.csv)
- Rejoin records split by embedded line breaks, append FileName /
  FileLoadDate and write the cleaned copy (X_utf8_cleaned.csv)
- Keep per-file statistics for the load summary

Uses utils:
- encoding_utils (T0042)
- record_repair (T0043)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import pandas as pd

from .utils.encoding_utils import normalize
from .utils.record_repair import RecordRepairEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Called with a step name ("encoding", "repair") before the step starts
StepCallback = Callable[[str], None]


class FileTransformer:
    """
    TEAM 1 - Export File Transformation Handler

    Stateless per file apart from the accumulated statistics.
    """

    STEP_ENCODING = "encoding"
    STEP_REPAIR = "repair"

    def __init__(self, append_provenance: bool = True):
        self.append_provenance = append_provenance
        self.transform_stats: Dict[str, Dict[str, Any]] = {}

    def transform_file(self,
                       file_path: Union[str, Path],
                       on_step: Optional[StepCallback] = None) -> Tuple[Path, Dict[str, Any]]:
        """
        Normalize encoding, then repair records

        Args:
            file_path: Downloaded export file
            on_step: Optional hook called before each step

        Returns:
            (path of the cleaned file, statistics)

        Raises:
            EncodingConversionError: Source is not valid UTF-16
            MalformedRecordError: Source cannot be repaired
        """
        file_path = Path(file_path)
        stats: Dict[str, Any] = {
            'file': file_path.name,
            'start_time': datetime.now(),
        }

        if on_step:
            on_step(self.STEP_ENCODING)
        utf8_path = normalize(file_path)
        stats['utf8_path'] = str(utf8_path)

        if on_step:
            on_step(self.STEP_REPAIR)
        # FileLoadDate is fixed once per file
        engine = RecordRepairEngine(self.append_provenance, load_timestamp=datetime.now())
        stats.update(engine.repair_file(utf8_path))

        stats['end_time'] = datetime.now()
        stats['duration_seconds'] = (stats['end_time'] - stats['start_time']).total_seconds()
        self.transform_stats[file_path.name] = stats

        logger.info(f"✅ {file_path.name} → {Path(stats['output_path']).name} "
                    f"({stats['records_repaired']} records repaired)")
        return Path(stats['output_path']), stats

    def get_transformation_summary(self) -> pd.DataFrame:
        """Get summary of transformation results"""
        if not self.transform_stats:
            return pd.DataFrame()

        records = []
        for file_name, stats in self.transform_stats.items():
            records.append({
                'File': file_name,
                'Columns': stats.get('columns', 0),
                'Rows_Processed': stats.get('total_rows_processed', 0),
                'Rows_Cleaned': stats.get('rows_cleaned', 0),
                'Records_Repaired': stats.get('records_repaired', 0),
                'Final_Rows': stats.get('final_row_count', 0),
                'Duration_Sec': stats.get('duration_seconds', 0),
            })

        return pd.DataFrame(records)


# ========================================
# Main execution
# ========================================

if __name__ == "__main__":
    import sys

    print("\n" + "="*70)
    print("TEAM 1 - OPS PIPELINE: TRANSFORM PHASE")
    print("="*70 + "\n")

    if len(sys.argv) < 2:
        print("Usage: python -m ops_sync.Transform <export.csv> [...]")
        sys.exit(1)

    transformer = FileTransformer()
    for path in sys.argv[1:]:
        transformer.transform_file(path)

    print("\n📊 TRANSFORMATION SUMMARY:")
    print(transformer.get_transformation_summary().to_string(index=False))
