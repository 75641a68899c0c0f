"""Tests for the process table, pattern matching and ProcessScanner.

Unit tests use FakeProcessTable; the psutil-backed table is exercised
against real sleeper processes that carry a unique marker.
"""

import asyncio
import os
from types import SimpleNamespace
from unittest.mock import patch

import psutil
import pytest
from hypothesis import given, settings
from hypothesis.strategies import characters, lists, text

from cfdev_lifecycle.exceptions import ProcessTableUnavailableError, TerminationSignalError
from cfdev_lifecycle.models import ProcessRecord
from cfdev_lifecycle.process_table import ProcessScanner, PsutilProcessTable, matches, own_lineage
from cfdev_lifecycle.reaper import ProcessReaper
from tests.process_helpers import FakeProcessTable, record, skip_on_windows, spawn_sleeper

# ============================================================================
# matches
# ============================================================================


class TestMatches:
    def test_substring_anywhere(self) -> None:
        r = record(4242, "/usr/local/bin/com.docker.hyperkit -A -u -F hyperkit.pid")
        assert matches(r, ["hyperkit"])

    def test_any_pattern(self) -> None:
        r = record(4242, "/Applications/cfdev/vpnkit --ethernet fd:3")
        assert matches(r, ["hyperkit", "vpnkit"])

    def test_case_sensitive(self) -> None:
        assert not matches(record(4242, "/opt/HyperKit/bin"), ["hyperkit"])

    def test_no_patterns(self) -> None:
        assert not matches(record(4242, "hyperkit"), [])


# ============================================================================
# ProcessScanner
# ============================================================================


class TestProcessScanner:
    async def test_returns_matches_in_order(self) -> None:
        table = FakeProcessTable(
            [
                record(100, "linuxkit-vm"),
                record(101, "/bin/zsh"),
                record(102, "vpnkit --ethernet"),
            ]
        )
        found = await ProcessScanner(table, exclude_pids=frozenset()).scan(["vpnkit", "linuxkit"])

        assert [r.pid for r in found] == [100, 102]

    async def test_excluded_pids_never_reported(self) -> None:
        table = FakeProcessTable([record(100, "cfdev-lifecycle reap -p hyperkit"), record(200, "hyperkit")])
        found = await ProcessScanner(table, exclude_pids=frozenset({100})).scan(["hyperkit"])

        assert [r.pid for r in found] == [200]

    async def test_empty_patterns_match_nothing(self) -> None:
        table = FakeProcessTable([record(100, "hyperkit")])
        scanner = ProcessScanner(table, exclude_pids=frozenset())

        assert await scanner.scan([]) == []
        assert await scanner.scan([""]) == []
        assert table.enumerations == 0

    async def test_unavailable_table_is_an_error(self) -> None:
        """An unreadable table must never look like an empty one."""
        scanner = ProcessScanner(FakeProcessTable(unavailable=True), exclude_pids=frozenset())

        with pytest.raises(ProcessTableUnavailableError):
            await scanner.scan(["hyperkit"])

    def test_default_excludes_own_lineage(self) -> None:
        scanner = ProcessScanner(FakeProcessTable())
        assert os.getpid() in scanner.exclude_pids


class TestOwnLineage:
    def test_contains_self_and_parent(self) -> None:
        lineage = own_lineage()
        assert os.getpid() in lineage
        assert os.getppid() in lineage


# ============================================================================
# PsutilProcessTable
# ============================================================================


def _fake_proc(**info: object) -> SimpleNamespace:
    return SimpleNamespace(info={"pid": None, "name": None, "cmdline": None, "status": "running", **info})


class TestPsutilEnumerate:
    def test_record_shapes(self) -> None:
        procs = [
            _fake_proc(pid=0, name="kernel_task"),
            _fake_proc(pid=10, name="kworker/0:1", cmdline=[]),
            _fake_proc(pid=11, name="hyperkit", cmdline=["/usr/bin/hyperkit", "-A", "-u"]),
            _fake_proc(pid=12, name="vpnkit", cmdline=["vpnkit"], status=psutil.STATUS_ZOMBIE),
            _fake_proc(pid=13),
        ]
        with patch("cfdev_lifecycle.process_table.psutil.process_iter", return_value=iter(procs)):
            records = PsutilProcessTable().enumerate()

        assert records == [
            ProcessRecord(pid=10, command_line="kworker/0:1"),
            ProcessRecord(pid=11, command_line="/usr/bin/hyperkit -A -u"),
        ]

    def test_enumeration_failure_raises(self) -> None:
        with (
            patch("cfdev_lifecycle.process_table.psutil.process_iter", side_effect=OSError("sysctl failed")),
            pytest.raises(ProcessTableUnavailableError, match="sysctl failed") as exc_info,
        ):
            PsutilProcessTable().enumerate()
        assert exc_info.value.context["error_type"] == "OSError"

    @skip_on_windows
    def test_sees_real_process(self, marker: str) -> None:
        proc = spawn_sleeper(marker)
        try:
            records = PsutilProcessTable().enumerate()
            assert any(r.pid == proc.pid and marker in r.command_line for r in records)
        finally:
            proc.kill()
            proc.wait()


@skip_on_windows
class TestPsutilKill:
    def test_kill_delivers_sigkill(self, marker: str) -> None:
        proc = spawn_sleeper(marker)
        assert PsutilProcessTable().kill(proc.pid) is True
        assert proc.wait(timeout=5) == -9

    def test_kill_gone_process_returns_false(self) -> None:
        with patch("cfdev_lifecycle.process_table.os.kill", side_effect=ProcessLookupError()):
            assert PsutilProcessTable().kill(4242) is False

    def test_kill_permission_denied_raises(self) -> None:
        with (
            patch("cfdev_lifecycle.process_table.os.kill", side_effect=PermissionError("not permitted")),
            pytest.raises(TerminationSignalError) as exc_info,
        ):
            PsutilProcessTable().kill(4242)
        assert exc_info.value.pid == 4242


# ============================================================================
# Properties
# ============================================================================

command_lines = text(characters(min_codepoint=0x20, max_codepoint=0x7E), min_size=1, max_size=40)
patterns = lists(text(characters(min_codepoint=0x61, max_codepoint=0x7A), min_size=1, max_size=4), max_size=3)


class TestScanProperties:
    @given(lines=lists(command_lines, max_size=20), wanted=patterns)
    @settings(max_examples=100)
    def test_scan_is_sound_and_complete(self, lines: list[str], wanted: list[str]) -> None:
        """Property: a scan returns exactly the records containing some pattern."""
        snapshot = [record(1000 + i, line) for i, line in enumerate(lines)]
        scanner = ProcessScanner(FakeProcessTable(snapshot), exclude_pids=frozenset())

        found = asyncio.run(scanner.scan(wanted))

        assert found == [r for r in snapshot if any(p in r.command_line for p in wanted)]

    @given(lines=lists(command_lines, max_size=20), wanted=patterns)
    @settings(max_examples=100)
    def test_clean_reap_leaves_no_match(self, lines: list[str], wanted: list[str]) -> None:
        """Property: after a CLEAN reap no remaining process matches."""
        table = FakeProcessTable(record(1000 + i, line) for i, line in enumerate(lines))
        reaper = ProcessReaper(ProcessScanner(table, exclude_pids=frozenset()))

        result = asyncio.run(reaper.reap(wanted))

        assert result.clean
        assert not any(matches(r, wanted) for r in table.records)
