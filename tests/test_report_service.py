from __future__ import annotations

import io
from datetime import datetime

import pytest

from conftest import FAKE_ROOT, fp
from ferret.engine.predicates import CapabilitiesPredicate, CredentialPatternPredicate, SuidPredicate
from ferret.engine.traversal import Scanner
from ferret.errors import SinkWriteError
from ferret.models.common import STATUS_INTERRUPTED, STATUS_OK, STATUS_WARN, CollectorResult
from ferret.models.filesystem import ExtensionStat, FilesystemStats, LargeFile, SizeBucket
from ferret.models.scan import OutputMode, ScanCounters, ScanRequest
from ferret.services.report_service import ReportService, scan_status


def _result(accessor, predicate=None):
    req = ScanRequest(root=FAKE_ROOT, predicate=predicate or SuidPredicate(), skip_pseudo_filesystems=False)
    return Scanner(req, accessor=accessor).scan()


def _reporter(mode=OutputMode.NORMAL, output_path=None):
    return ReportService(mode=mode, output_path=output_path, stdout=io.StringIO(), stderr=io.StringIO())


def test_quiet_output_to_file_round_trips(fake_tree, tmp_path):
    out = tmp_path / "hits.txt"
    rep = _reporter(OutputMode.QUIET, out)
    summary = rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")

    assert out.read_text(encoding="utf-8").splitlines() == [fp("bin", "ping")]
    assert rep.stdout.getvalue() == ""
    assert rep.stderr.getvalue() == ""
    assert summary.status == STATUS_OK
    assert summary.data.matched == 1


def test_normal_output_prints_paths_and_summary(fake_tree):
    rep = _reporter()
    rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    assert rep.stdout.getvalue() == fp("bin", "ping") + "\n"
    assert f"suid: 1 match under {FAKE_ROOT} (7 entries visited)" in rep.stderr.getvalue()


def test_verbose_adds_detail_column(fake_tree):
    rep = _reporter(OutputMode.VERBOSE)
    rep.report_scan(_result(fake_tree, CredentialPatternPredicate()), root=FAKE_ROOT, check="configs")
    assert rep.stdout.getvalue() == f"{fp('home', 'u', 'id_rsa')}\t2.5KB\n"


def test_verbose_lists_unreadable_entries_on_stderr(fake_tree):
    fake_tree.break_entry(fp("bin", "ls"))
    rep = _reporter(OutputMode.VERBOSE)
    summary = rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    err = rep.stderr.getvalue()
    assert f"{fp('bin', 'ls')}: could not be read (input/output error)" in err
    assert "1 entry could not be read" in err
    assert fp("bin", "ls") not in rep.stdout.getvalue()
    assert summary.status == STATUS_WARN


def test_quiet_still_reports_unreadable_count(fake_tree):
    fake_tree.break_entry(fp("bin", "ls"))
    rep = _reporter(OutputMode.QUIET)
    rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    assert rep.stderr.getvalue() == "1 entry could not be read\n"


def test_summary_mentions_skipped_directories(fake_tree):
    fake_tree.add_dir(fp("home", "u", "private"))
    fake_tree.deny(fp("home", "u", "private"))
    rep = _reporter()
    summary = rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    assert "1 directory skipped (permission denied)" in rep.stderr.getvalue()
    assert summary.status == STATUS_WARN


def test_unsupported_check_warning_is_printed_once(fake_tree):
    rep = _reporter()
    summary = rep.report_scan(_result(fake_tree, CapabilitiesPredicate()), root=FAKE_ROOT, check="caps")
    err = rep.stderr.getvalue()
    assert err.count("warning:") == 1
    assert "caps: 0 matches" in err
    assert summary.warning_count == 1


def test_unwritable_sink_raises_and_stops_scan(fake_tree, tmp_path):
    result = _result(fake_tree)
    rep = _reporter(output_path=tmp_path / "missing" / "hits.txt")
    with pytest.raises(SinkWriteError):
        rep.report_scan(result, root=FAKE_ROOT, check="suid")
    assert result.cancelled


class _FailingSink(io.StringIO):
    def write(self, s):
        raise OSError(28, "No space left on device")


def test_write_failure_is_a_sink_error(fake_tree):
    rep = ReportService(stdout=_FailingSink(), stderr=io.StringIO())
    with pytest.raises(SinkWriteError) as exc:
        rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    assert "<stdout>" in str(exc.value)


class _InterruptingSink(io.StringIO):
    def write(self, s):
        raise KeyboardInterrupt


def test_keyboard_interrupt_marks_summary(fake_tree):
    rep = ReportService(stdout=_InterruptingSink(), stderr=io.StringIO())
    summary = rep.report_scan(_result(fake_tree), root=FAKE_ROOT, check="suid")
    assert summary.status == STATUS_INTERRUPTED
    assert "scan interrupted; results are incomplete" in rep.stderr.getvalue()


def test_scan_status():
    assert scan_status(ScanCounters()) == STATUS_OK
    assert scan_status(ScanCounters(indeterminate=1)) == STATUS_WARN
    assert scan_status(ScanCounters(), interrupted=True) == STATUS_INTERRUPTED


def _stats() -> CollectorResult[FilesystemStats]:
    data = FilesystemStats(
        path="/data",
        total_files=4,
        total_dirs=1,
        total_bytes=3072,
        size_buckets=[SizeBucket("0-1KB", 2), SizeBucket("1KB-100KB", 2)],
        extensions=[ExtensionStat(".txt", 3, 2048), ExtensionStat("(no extension)", 1, 1024)],
        large_files=[LargeFile(1024, "/data/sub/a.txt")],
        mount=None,
        notes=["1 entries could not be read"],
    )
    return CollectorResult(ts=datetime.now(), status=STATUS_OK, warning_count=0, data=data)


def test_render_stats_sections():
    text = ReportService().render_stats(_stats())
    for header in ("[General]", "[Size Distribution]", "[Top File Types]", "[Largest Files]"):
        assert header in text
    assert "- total_size: 3.0KB" in text
    assert "#" * 15 + "." * 15 in text
    assert "sub/a.txt" in text.replace("\\", "/")
    assert "[Status]" not in text


def test_render_stats_verbose_shows_notes():
    text = ReportService().render_stats(_stats(), verbose=True)
    assert "- note: 1 entries could not be read" in text


def test_stats_report_html_is_escaped(tmp_path):
    rep = ReportService()
    bundle = rep.build_stats_report(_stats())
    assert bundle.text.startswith("Ferret Directory Statistics @ ")
    assert "<pre>" in bundle.html
    assert "&lt;" not in bundle.text
    written = rep.write_html(tmp_path / "r" / "stats.html", bundle.html)
    assert (tmp_path / "r" / "stats.html").read_text(encoding="utf-8") == bundle.html
    assert written.endswith("stats.html")
