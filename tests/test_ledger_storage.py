"""Tests for ledger storage backends."""

import threading

import pytest

from buildmetrics.ledger import (
    FileLedgerStorage,
    InMemoryLedgerStorage,
    MetricsLedger,
    ParseError,
    StepStatus,
)


class TestFileLedgerStorage:
    """Tests for FileLedgerStorage."""

    def test_read_missing_file(self, tmp_path):
        storage = FileLedgerStorage(tmp_path / "metrics.csv")

        assert storage.read_all() == []

    def test_append_and_read(self, tmp_path):
        storage = FileLedgerStorage(tmp_path / "metrics.csv")

        storage.append_line("a,0.0,1.0,1.0,success")
        storage.append_line("b,1.0,2.0,1.0,failure")

        assert storage.read_all() == [
            "a,0.0,1.0,1.0,success",
            "b,1.0,2.0,1.0,failure",
        ]

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "reports" / "ci" / "metrics.csv"
        storage = FileLedgerStorage(path)

        storage.append_line("a,0.0,1.0,1.0,success")

        assert path.exists()

    def test_truncate(self, tmp_path):
        storage = FileLedgerStorage(tmp_path / "metrics.csv")
        storage.append_line("a,0.0,1.0,1.0,success")

        storage.truncate()

        assert storage.read_all() == []

    def test_concurrent_writers_do_not_interleave(self, tmp_path):
        """Test appends from independent handles stay whole lines."""
        path = tmp_path / "metrics.csv"

        def writer(prefix: str) -> None:
            storage = FileLedgerStorage(path)
            for i in range(50):
                storage.append_line(f"{prefix}_{i},0.0,1.0,1.0,success")

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("lib", "app", "docs")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ledger = MetricsLedger.load(path)
        assert len(ledger) == 150


class TestSharedLedgerFile:
    """Tests simulating build stages run as separate processes."""

    def test_stages_append_to_same_file(self, tmp_path):
        path = tmp_path / "metrics.csv"

        stage_one = MetricsLedger.open(path, clock=iter([0.0, 30.0]).__next__)
        stage_one.begin_step("build_lib")
        stage_one.end_step("build_lib", StepStatus.SUCCESS)

        stage_two = MetricsLedger.open(path, clock=iter([30.0, 90.0]).__next__)
        stage_two.begin_step("build_app")
        stage_two.end_step("build_app", StepStatus.SUCCESS)

        final = MetricsLedger.load(path)
        assert [r.name for r in final.records] == ["build_lib", "build_app"]
        assert final.records[1].duration_seconds == 60.0

    def test_corrupt_file_fails_to_open(self, tmp_path):
        path = tmp_path / "metrics.csv"
        path.write_text("build_lib,0,30\n")

        with pytest.raises(ParseError):
            MetricsLedger.open(path)

    def test_existing_records_survive_failed_append(self, tmp_path):
        """Test a failure mid-append leaves earlier records readable."""
        path = tmp_path / "metrics.csv"
        storage = FileLedgerStorage(path)
        storage.append_line("build_lib,0.0,30.0,30.0,success")

        with pytest.raises(RuntimeError):
            with storage.open_for_append() as handle:
                raise RuntimeError("killed before writing")

        assert MetricsLedger.load(path).records[0].name == "build_lib"


class TestInMemoryLedgerStorage:
    """Tests for InMemoryLedgerStorage."""

    def test_initial_text(self):
        storage = InMemoryLedgerStorage("a,0,1,1,success\n")

        assert storage.read_all() == ["a,0,1,1,success"]

    def test_aborted_append_is_discarded(self):
        storage = InMemoryLedgerStorage()

        with pytest.raises(RuntimeError):
            with storage.open_for_append() as handle:
                handle.write("partial,0")
                raise RuntimeError("crash")

        assert storage.text == ""

    def test_truncate(self):
        storage = InMemoryLedgerStorage("a,0,1,1,success\n")

        storage.truncate()

        assert storage.read_all() == []
