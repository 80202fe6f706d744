"""
Unit Tests for the load orchestrator (SQLite end to end)
"""

from sqlalchemy import text

from conftest import write_utf16
from ops_sync.Load import DatabaseLoader, create_database_engine
from ops_sync.config import StoredOperation
from ops_sync.models import RunOutcome
from ops_sync.utils.cancellation import CancellationToken

CONTACTS = "Id|Name|City\r\n1|Alice|Oslo\r\n2|Bo\r\nb|Rome\r\n3|Carol|Pisa\r\n"
CALLS = "CallId|Note\r\nc1|first call\r\nc2|second\r\n"


def fetch(engine, sql):
    with engine.connect() as conn:
        return conn.execute(text(sql)).fetchall()


def file_list_for(local_dir, *entries):
    return "".join(f"{table}|{local_dir / name}\n" for table, name in entries)


class TestDatabaseLoader:
    """Tests for DatabaseLoader.process_all()"""

    def test_end_to_end(self, make_config, engine, local_dir):
        write_utf16(local_dir / "Export_2532_Contacts.csv", CONTACTS)
        write_utf16(local_dir / "Export_2532_Calls.csv", CALLS)
        config = make_config(file_list=file_list_for(
            local_dir, ("contacts", "Export_2532_Contacts.csv"), ("calls", "Export_2532_Calls.csv"),
        ))
        loader = DatabaseLoader(config, engine=engine)
        seen = []
        loader.notifier.progress_channel.subscribe(lambda e: seen.append(e.global_percent))

        result = loader.process_all()

        assert result.outcome == RunOutcome.SUCCEEDED
        assert result.status == "Complete"
        assert fetch(engine, 'SELECT "Id", "Name", "FileName" FROM contacts ORDER BY "Id"') == [
            ("1", "Alice", "Export_2532_Contacts_utf8.csv"),
            ("2", "Bob", "Export_2532_Contacts_utf8.csv"),
            ("3", "Carol", "Export_2532_Contacts_utf8.csv"),
        ]
        assert len(fetch(engine, "SELECT * FROM calls")) == 2
        assert fetch(engine, "SELECT step FROM maintenance_log") == [("truncate",), ("consolidate",)]

        # One load timestamp per file
        assert len(fetch(engine, 'SELECT DISTINCT "FileLoadDate" FROM contacts')) == 1

        assert seen == sorted(seen)
        assert 10 in seen and 50 in seen and 90 in seen
        assert seen[-1] == 100
        assert (local_dir / "Export_2532_Contacts_utf8.csv").exists()
        assert (local_dir / "Export_2532_Contacts_utf8_cleaned.csv").exists()

        summary = loader.get_load_summary()
        assert list(summary['Rows_Affected']) == [3, 2]
        assert list(summary['Rows_Cleaned']) == [1, 0]

    def test_missing_file_is_skipped(self, make_config, engine, local_dir):
        write_utf16(local_dir / "Export_2532_Calls.csv", CALLS)
        config = make_config(file_list=file_list_for(
            local_dir, ("contacts", "Export_2532_Contacts.csv"), ("calls", "Export_2532_Calls.csv"),
        ))
        loader = DatabaseLoader(config, engine=engine)
        seen = []
        loader.notifier.progress_channel.subscribe(lambda e: seen.append(e.global_percent))

        result = loader.process_all()

        assert result.outcome == RunOutcome.SUCCEEDED
        assert result.status == "Completed with warnings"
        assert any("File not found" in w for w in result.warnings)
        assert len(fetch(engine, "SELECT * FROM calls")) == 2
        assert seen[-1] == 100

    def test_per_file_failures_do_not_stop_the_run(self, make_config, engine, local_dir):
        write_utf16(local_dir / "broken.csv", "Id|Name|City\r\n1|x|y\r\n2|short\r\n")
        (local_dir / "odd.csv").write_bytes(b"\xff\xfeA")
        write_utf16(local_dir / "Export_2532_Calls.csv", CALLS)
        write_utf16(local_dir / "Export_2532_Contacts.csv", CONTACTS)
        config = make_config(file_list=file_list_for(
            local_dir,
            ("contacts", "broken.csv"),
            ("contacts", "odd.csv"),
            ("no_such_table", "Export_2532_Contacts.csv"),
            ("calls", "Export_2532_Calls.csv"),
        ))

        result = DatabaseLoader(config, engine=engine).process_all()

        assert result.outcome == RunOutcome.SUCCEEDED
        assert len(result.warnings) == 3
        assert fetch(engine, "SELECT * FROM contacts") == []
        assert len(fetch(engine, "SELECT * FROM calls")) == 2
        assert fetch(engine, "SELECT step FROM maintenance_log")[-1] == ("consolidate",)

    def test_failing_maintenance_and_consolidation_are_warnings(self, make_config, engine, local_dir):
        write_utf16(local_dir / "Export_2532_Calls.csv", CALLS)
        config = make_config(
            file_list=file_list_for(local_dir, ("calls", "Export_2532_Calls.csv")),
            maintenance_operations=[
                StoredOperation(name="sp_missing", statement="EXEC sp_missing"),
                StoredOperation(name="truncate_import",
                                statement="INSERT INTO maintenance_log (step) VALUES ('truncate')"),
            ],
            consolidation_operation=StoredOperation(name="sp_consolidate", statement="EXEC sp_consolidate"),
        )

        result = DatabaseLoader(config, engine=engine).process_all()

        assert result.outcome == RunOutcome.SUCCEEDED
        assert result.status == "Completed with warnings"
        assert len(result.warnings) == 2
        assert fetch(engine, "SELECT step FROM maintenance_log") == [("truncate",)]
        assert len(fetch(engine, "SELECT * FROM calls")) == 2

    def test_cancel_between_files(self, make_config, engine, local_dir):
        write_utf16(local_dir / "Export_2532_Contacts.csv", CONTACTS)
        write_utf16(local_dir / "Export_2532_Calls.csv", CALLS)
        config = make_config(file_list=file_list_for(
            local_dir, ("contacts", "Export_2532_Contacts.csv"), ("calls", "Export_2532_Calls.csv"),
        ))
        loader = DatabaseLoader(config, engine=engine)
        token = CancellationToken()

        def cancel_on_first_upload(event):
            if event.step_label == "Uploading to SQL" and event.current_index == 1:
                token.cancel()

        loader.notifier.progress_channel.subscribe(cancel_on_first_upload)

        result = loader.process_all(token)

        assert result.outcome == RunOutcome.CANCELLED
        assert result.status == "Cancelled"
        assert len(fetch(engine, "SELECT * FROM contacts")) == 3
        assert fetch(engine, "SELECT * FROM calls") == []
        assert fetch(engine, "SELECT step FROM maintenance_log") == [("truncate",)]

    def test_empty_file_list_fails(self, make_config, engine):
        result = DatabaseLoader(make_config(file_list="\n"), engine=engine).process_all()
        assert result.outcome == RunOutcome.FAILED
        assert result.status == "Failed"


def test_create_database_engine_from_config(make_config):
    engine = create_database_engine(make_config())
    try:
        assert engine.url.get_backend_name() == "sqlite"
    finally:
        engine.dispose()
