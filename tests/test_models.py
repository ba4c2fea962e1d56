"""Tests for daemonpid data models and the record format."""

from pathlib import Path

import pytest

from daemonpid.models import MAX_PID, ProcessRecord, RecordState, format_record, parse_record


def test_process_record_creation():
    """Test ProcessRecord dataclass creation."""
    record = ProcessRecord(path=Path("/run/app.pid"), pid=4821, modified_at=1700000000.0)

    assert record.path == Path("/run/app.pid")
    assert record.pid == 4821
    assert record.modified_at == 1700000000.0


def test_process_record_is_frozen():
    """Test that ProcessRecord is immutable (frozen)."""
    record = ProcessRecord(path=Path("pid"), pid=1, modified_at=0.0)

    with pytest.raises(AttributeError):
        record.pid = 999


def test_process_record_uses_slots():
    """Test that ProcessRecord uses __slots__ for memory efficiency."""
    record = ProcessRecord(path=Path("pid"), pid=1, modified_at=0.0)

    assert not hasattr(record, "__dict__")


def test_record_state_values():
    """Test RecordState enum has the three path states."""
    assert [state.value for state in RecordState] == ["absent", "owned", "stale"]


class TestRecordFormat:
    """Tests for parse_record and format_record."""

    def test_format_is_newline_terminated_decimal(self):
        assert format_record(4821) == "4821\n"

    @pytest.mark.parametrize("content", ["4821", "4821\n"])
    def test_parse_accepts_optional_trailing_newline(self, content):
        assert parse_record(content) == 4821

    @pytest.mark.parametrize(
        "content",
        ["", "\n", "abc", "12a", "-5", "0", "4821\n\n", " 4821", "4821 ", "1.5", "٤٨٢١"],
    )
    def test_parse_rejects_anything_else(self, content):
        with pytest.raises(ValueError):
            parse_record(content)

    @pytest.mark.parametrize("pid", [0, -1, True, "12", 1.0])
    def test_format_rejects_non_positive_or_non_int(self, pid):
        with pytest.raises(ValueError):
            format_record(pid)

    def test_parse_accepts_largest_pid(self):
        assert parse_record(f"{MAX_PID}\n") == MAX_PID

    @pytest.mark.parametrize("content", ["2147483648", "99999999999999999999\n"])
    def test_parse_rejects_pids_beyond_pid_range(self, content):
        with pytest.raises(ValueError):
            parse_record(content)

    def test_format_rejects_pids_beyond_pid_range(self):
        with pytest.raises(ValueError):
            format_record(MAX_PID + 1)
