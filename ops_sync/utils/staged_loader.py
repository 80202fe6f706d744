# ═══════════════════════════════════════════════════════════════════════
# TEAM 1 - SPRINT 8: Staged Loader (staging table + merge)
# Tasks: T0018, T0021, T0044
# ═══════════════════════════════════════════════════════════════════════

"""
Staged Loader - bulk copy into a staging table, then set-based upsert

Flow per file:
1. Materialize records into a DataFrame (every column text)
2. Create a connection-scoped staging table (all columns Unicode text,
   NVARCHAR(max) on SQL Server)
3. Bulk insert in batches (bulk-copy timeout, default 5 minutes)
4. Merge staging → destination on the FIRST column (merge timeout)
5. Drop the staging table

The first column is treated as the merge key. This is a structural
assumption: the destination table is not inspected for a primary key,
so callers must order columns so that column 0 uniquely identifies a row
in the destination table.

SQL Server gets a single MERGE statement. Other dialects (PostgreSQL,
SQLite in tests) get UPDATE ... WHERE EXISTS + INSERT ... WHERE NOT EXISTS
inside the same transaction.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from sqlalchemy import Column, MetaData, Table, UnicodeText, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable, DropTable

from ..errors import StagedLoadError
from .delimited_parser import parse_line, unescape_field
from .record_repair import iter_raw_lines

logger = logging.getLogger(__name__)


def read_cleaned_records(csv_path: Union[str, Path],
                         unescape: bool = False) -> Tuple[List[str], List[List[str]], int]:
    """
    Read a cleaned file back into header + rows

    Rows whose field count differs from the header are dropped.

    Args:
        csv_path: Cleaned pipe-delimited file
        unescape: Undo the output quoting on every field

    Returns:
        Tuple of (header, rows, dropped_row_count)
    """
    lines = iter_raw_lines(csv_path)
    header_line = next(lines, None)
    if header_line is None:
        return [], [], 0

    header = [name.strip() for name in parse_line(header_line, True)]
    rows: List[List[str]] = []
    dropped = 0
    for line in lines:
        values = parse_line(line, False)
        if len(values) != len(header):
            dropped += 1
            continue
        rows.append([unescape_field(v) for v in values] if unescape else values)

    return header, rows, dropped


def apply_command_timeout(connection: Connection, seconds: int) -> None:
    """Set the per-statement timeout for the rest of this connection's work"""
    dialect = connection.dialect.name
    if dialect == "mssql":
        dbapi_connection = connection.connection.dbapi_connection
        if hasattr(dbapi_connection, "timeout"):
            dbapi_connection.timeout = int(seconds)
    elif dialect == "postgresql":
        connection.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))
    else:
        logger.debug(f"   Command timeout not supported for dialect {dialect}")


def _unique_column_names(header: Sequence[str]) -> List[str]:
    """Blank header cells become Column1, Column2, ..."""
    names = []
    auto = 0
    for name in header:
        name = name.strip()
        if not name:
            auto += 1
            name = f"Column{auto}"
            while name in header:
                auto += 1
                name = f"Column{auto}"
        names.append(name)
    return names


class StagedLoader:
    """
    TEAM 1 - T0044: Staging-table loader with first-column merge

    Any SQL error during create / bulk copy / merge is logged with full
    detail and re-raised as StagedLoadError. The caller skips the file.
    """

    DEFAULT_BULK_COPY_TIMEOUT = 300   # 5 minutes
    DEFAULT_MERGE_TIMEOUT = 500

    def __init__(self,
                 batch_size: int = 10000,
                 bulk_copy_timeout: int = DEFAULT_BULK_COPY_TIMEOUT,
                 merge_timeout: int = DEFAULT_MERGE_TIMEOUT):
        """
        Initialize staged loader

        Args:
            batch_size: Rows per executemany batch into the staging table
            bulk_copy_timeout: Seconds allowed for the bulk copy
            merge_timeout: Seconds allowed for the merge statement
        """
        self.batch_size = batch_size
        self.bulk_copy_timeout = bulk_copy_timeout
        self.merge_timeout = merge_timeout
        self.stats: Dict[str, Any] = {}

    # ========================================
    # Team 1 - T0044: Row-set materialization
    # ========================================
    @staticmethod
    def to_dataframe(records: Sequence[Sequence[str]]) -> pd.DataFrame:
        """Header + rows → DataFrame with every column as text"""
        if not records:
            return pd.DataFrame()
        header = _unique_column_names(records[0])
        return pd.DataFrame([list(r) for r in records[1:]], columns=header, dtype=str)

    @staticmethod
    def _staging_table(connection: Connection, destination_table: str,
                       columns: Sequence[str]) -> Table:
        base = destination_table.split(".")[-1].strip("[]\"")
        suffix = uuid.uuid4().hex
        # NVARCHAR(max) on SQL Server; the cleaned files are Unicode
        staging_columns = [Column(c, UnicodeText) for c in columns]
        if connection.dialect.name == "mssql":
            # '#' tables live for the session only
            return Table(f"#{base}_temp_{suffix}", MetaData(), *staging_columns)
        return Table(f"{base}_temp_{suffix}", MetaData(), *staging_columns, prefixes=["TEMPORARY"])

    # ========================================
    # Team 1 - T0021: Set-based merge
    # ========================================
    @staticmethod
    def build_merge_statements(connection: Connection,
                               destination_table: str,
                               staging: Table,
                               columns: Sequence[str]) -> List[str]:
        """
        Build the merge SQL for the connection's dialect

        Returns:
            List of statements to run in order; affected rows are summed
        """
        preparer = connection.dialect.identifier_preparer
        q = preparer.quote
        target = ".".join(q(part.strip("[]\"")) for part in destination_table.split("."))
        source = preparer.format_table(staging)
        key = q(columns[0])
        others = [q(c) for c in columns[1:]]
        all_cols = [q(c) for c in columns]

        if connection.dialect.name == "mssql":
            lines = [
                f"MERGE {target} AS target",
                f"USING {source} AS source",
                f"ON target.{key} = source.{key}",
            ]
            if others:
                lines.append("WHEN MATCHED THEN UPDATE SET")
                lines.append(", ".join(f"target.{c} = source.{c}" for c in others))
            lines.append("WHEN NOT MATCHED BY TARGET THEN")
            lines.append(f"INSERT ({', '.join(all_cols)})")
            lines.append(f"VALUES ({', '.join(f'source.{c}' for c in all_cols)});")
            return ["\n".join(lines)]

        statements = []
        if others:
            assignments = ", ".join(
                f"{c} = (SELECT s.{c} FROM {source} AS s WHERE s.{key} = {target}.{key})"
                for c in others
            )
            statements.append(
                f"UPDATE {target} SET {assignments} "
                f"WHERE EXISTS (SELECT 1 FROM {source} AS s WHERE s.{key} = {target}.{key})"
            )
        statements.append(
            f"INSERT INTO {target} ({', '.join(all_cols)}) "
            f"SELECT {', '.join(f's.{c}' for c in all_cols)} FROM {source} AS s "
            f"WHERE NOT EXISTS (SELECT 1 FROM {target} AS d WHERE d.{key} = s.{key})"
        )
        return statements

    # ========================================
    # Team 1 - T0018: Staged load
    # ========================================
    def load(self,
             connection: Connection,
             destination_table: str,
             records: Sequence[Sequence[str]]) -> int:
        """
        Load records into destination_table via a staging table

        Args:
            connection: Open connection (not inside a transaction); the
                staging table is scoped to it
            destination_table: Target table, optionally schema-qualified
            records: Header row followed by data rows

        Returns:
            Number of rows affected by the merge

        Raises:
            StagedLoadError: Create, bulk copy or merge failed
        """
        df = self.to_dataframe(records)
        self.stats = {
            'table_name': destination_table,
            'total_rows': len(df),
            'staged_rows': 0,
            'rows_affected': 0,
            'start_time': datetime.now(),
            'end_time': None,
        }

        logger.info(f"▶ Staged load to {destination_table}")
        logger.info(f"   Loaded {len(df):,} records into row-set ({len(df.columns)} columns)")

        if df.empty:
            logger.warning("⚠️ Empty row-set, nothing to load")
            self.stats['end_time'] = datetime.now()
            return 0

        columns = list(df.columns)
        staging = self._staging_table(connection, destination_table, columns)

        try:
            connection.execute(CreateTable(staging))

            apply_command_timeout(connection, self.bulk_copy_timeout)
            batch_records = df.to_dict('records')
            for start in range(0, len(batch_records), self.batch_size):
                batch = batch_records[start:start + self.batch_size]
                connection.execute(staging.insert(), batch)
                self.stats['staged_rows'] += len(batch)
            logger.info(f"   Bulk insert completed: {self.stats['staged_rows']:,} records into staging table")

            apply_command_timeout(connection, self.merge_timeout)
            affected = 0
            for statement in self.build_merge_statements(connection, destination_table, staging, columns):
                result = connection.execute(text(statement))
                affected += max(result.rowcount or 0, 0)
            connection.commit()

            self.stats['rows_affected'] = affected
            self.stats['end_time'] = datetime.now()
            duration = (self.stats['end_time'] - self.stats['start_time']).total_seconds()
            logger.info(f"✅ UPSERT operation completed: {affected:,} records affected in {duration:.2f}s")
            return affected

        except SQLAlchemyError as e:
            connection.rollback()
            self.stats['error'] = str(e)
            self.stats['end_time'] = datetime.now()
            logger.exception(f"❌ Staged load to {destination_table} failed: {e}")
            raise StagedLoadError(f"Staged load to {destination_table} failed: {e}",
                                  destination_table) from e

        finally:
            self._drop_staging(connection, staging)

    @staticmethod
    def _drop_staging(connection: Connection, staging: Table) -> None:
        try:
            connection.execute(DropTable(staging, if_exists=True))
            connection.commit()
        except SQLAlchemyError as e:
            connection.rollback()
            logger.warning(f"⚠️ Could not drop staging table {staging.name} "
                           f"(released with the connection): {e}")

    def load_file(self,
                  engine: Engine,
                  destination_table: str,
                  csv_path: Union[str, Path],
                  unescape: bool = False) -> int:
        """
        Read a cleaned file and load it in its own connection scope

        Returns:
            Number of rows affected by the merge
        """
        header, rows, dropped = read_cleaned_records(csv_path, unescape=unescape)
        if dropped:
            logger.warning(f"⚠️ Skipped {dropped:,} rows with a field count different from the header")
        if not header:
            logger.warning(f"⚠️ {Path(csv_path).name} is empty, nothing to load")
            return 0

        try:
            with engine.connect() as connection:
                return self.load(connection, destination_table, [header] + rows)
        except StagedLoadError:
            raise
        except SQLAlchemyError as e:
            logger.exception(f"❌ Database connection failed: {e}")
            raise StagedLoadError(f"Cannot connect for {destination_table}: {e}",
                                  destination_table) from e

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()
