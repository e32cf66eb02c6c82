from __future__ import annotations

import html
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, Iterator

from ferret.engine.traversal import ScanResult
from ferret.errors import SinkWriteError
from ferret.formatting import human_bytes, make_bar
from ferret.models.common import STATUS_INTERRUPTED, STATUS_OK, STATUS_WARN, CollectorResult
from ferret.models.filesystem import FilesystemStats
from ferret.models.scan import Match, OutputMode, ScanCounters

logger = logging.getLogger(__name__)

ScanSummary = CollectorResult[ScanCounters]


@dataclass(frozen=True)
class ReportBundle:
    text: str
    html: str


def _count(n: int, singular: str, plural: str) -> str:
    return f"{n} {singular if n == 1 else plural}"


def scan_status(c: ScanCounters, interrupted: bool = False) -> str:
    if interrupted:
        return STATUS_INTERRUPTED
    if c.warnings or c.indeterminate or c.skipped_dirs or c.unreadable_dirs:
        return STATUS_WARN
    return STATUS_OK


class ReportService:
    def __init__(
        self,
        mode: OutputMode = OutputMode.NORMAL,
        output_path: str | os.PathLike[str] | None = None,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> None:
        self.mode = mode
        self.output_path = str(output_path) if output_path is not None else None
        self._stdout = stdout
        self._stderr = stderr

    @property
    def stdout(self) -> IO[str]:
        return self._stdout or sys.stdout

    @property
    def stderr(self) -> IO[str]:
        return self._stderr or sys.stderr

    @property
    def destination(self) -> str:
        return self.output_path or "<stdout>"

    def format_line(self, m: Match) -> str:
        if self.mode is OutputMode.VERBOSE and m.outcome.detail:
            return f"{m.entry.path}\t{m.outcome.detail}"
        return m.entry.path

    def report_scan(self, result: ScanResult, *, root: str, check: str) -> ScanSummary:
        for w in result.counters.warnings:
            self._note(f"warning: {w}")

        sink = self._open_sink(result)
        interrupted = False
        try:
            for m in result:
                if m.outcome.is_match:
                    self._emit(sink, self.format_line(m), result)
                elif self.mode is OutputMode.VERBOSE:
                    self._note(f"{m.entry.path}: could not be read ({m.outcome.detail})")
        except KeyboardInterrupt:
            interrupted = True
            result.close()
        finally:
            self._close_sink(sink, result)

        counters = result.counters.snapshot()
        logger.info("%s scan of %s finished: %d matched, %d visited", check, root, counters.matched, counters.visited)
        self._summarize(counters, root=root, check=check, interrupted=interrupted)

        return CollectorResult(
            ts=datetime.now(),
            status=scan_status(counters, interrupted),
            warning_count=len(counters.warnings),
            warnings=list(counters.warnings),
            data=counters,
        )

    def summary_lines(self, c: ScanCounters, *, root: str, check: str, interrupted: bool = False) -> Iterator[str]:
        if self.mode is not OutputMode.QUIET:
            yield (
                f"{check}: {_count(c.matched, 'match', 'matches')} under {root} "
                f"({_count(c.visited, 'entry', 'entries')} visited)"
            )
            if c.skipped_dirs:
                yield f"{_count(c.skipped_dirs, 'directory', 'directories')} skipped (permission denied)"
            if c.unreadable_dirs:
                yield f"{_count(c.unreadable_dirs, 'directory', 'directories')} could not be opened"
            if c.pruned:
                yield f"{_count(c.pruned, 'pseudo filesystem', 'pseudo filesystems')} not descended"
        if c.indeterminate:
            yield f"{_count(c.indeterminate, 'entry', 'entries')} could not be read"
        if interrupted:
            yield "scan interrupted; results are incomplete"

    def _summarize(self, c: ScanCounters, *, root: str, check: str, interrupted: bool) -> None:
        for line in self.summary_lines(c, root=root, check=check, interrupted=interrupted):
            self._note(line)

    def _open_sink(self, result: ScanResult) -> IO[str]:
        if self.output_path is None:
            return self.stdout
        try:
            return open(self.output_path, "w", encoding="utf-8", errors="surrogateescape", newline="\n")
        except OSError as e:
            result.close()
            raise SinkWriteError(self.output_path, e) from e

    def _emit(self, sink: IO[str], line: str, result: ScanResult) -> None:
        try:
            sink.write(line + "\n")
        except BrokenPipeError:
            result.close()
            raise
        except OSError as e:
            result.close()
            raise SinkWriteError(self.destination, e) from e

    def _close_sink(self, sink: IO[str], result: ScanResult) -> None:
        try:
            if sink is self.stdout:
                sink.flush()
            else:
                sink.close()
        except BrokenPipeError:
            raise
        except OSError as e:
            result.close()
            raise SinkWriteError(self.destination, e) from e

    def _note(self, line: str) -> None:
        print(line, file=self.stderr)

    def build_stats_report(self, r: CollectorResult[FilesystemStats]) -> ReportBundle:
        now = datetime.now().strftime("%F %T")
        lines: list[str] = [f"Ferret Directory Statistics @ {now}", ""]
        lines.append(self.render_stats(r))
        text_out = "\n".join(lines).strip() + "\n"
        return ReportBundle(text=text_out, html=self._wrap_html(text_out))

    def default_report_path(self) -> Path:
        base = Path.home() / "ferret_reports"
        base.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        return base / f"stats_{ts}.html"

    def write_html(self, path: str | os.PathLike[str], html_str: str) -> str:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(html_str, encoding="utf-8")
        return str(p)

    def render_stats(self, r: CollectorResult[FilesystemStats], verbose: bool = False) -> str:
        d = r.data
        out: list[str] = [f"Analyzing directory: {d.path}", ""]

        out.append("[General]")
        out.append(f"- total_files: {d.total_files}")
        out.append(f"- total_dirs: {d.total_dirs}")
        out.append(f"- total_size: {human_bytes(d.total_bytes)}")
        if d.mount is not None:
            m = d.mount
            out.append(
                f"- mount: {m.mountpoint} ({m.fstype}) {m.used_percent}% used "
                f"({m.used_gb:.2f}/{m.total_gb:.2f} GB)"
            )
        out.append("")

        out.append("[Size Distribution]")
        for b in d.size_buckets:
            out.append(f"  {b.label:<12} {b.count:>6} {make_bar(b.count, d.total_files)}")
        out.append("")

        out.append("[Top File Types]")
        out.append(f"  {'Extension':<20} {'Count':>10} {'Total Size':>15}")
        out.append("  " + "-" * 47)
        for e in d.extensions:
            out.append(f"  {e.extension:<20} {e.count:>10} {human_bytes(e.size_bytes):>15}")
        out.append("")

        out.append("[Largest Files]")
        for f in d.large_files:
            shown = os.path.relpath(f.path, d.path) if f.path.startswith(d.path) else f.path
            out.append(f"  {human_bytes(f.size_bytes):>10}  {shown}")

        if r.warnings or (verbose and d.notes):
            out.append("")
            out.append(f"[Status] {r.status} (warnings={r.warning_count})")
            for w in r.warnings:
                out.append(f"- warning: {w}")
            if verbose:
                for n in d.notes:
                    out.append(f"- note: {n}")
        return "\n".join(out) + "\n"

    def _wrap_html(self, text_out: str) -> str:
        escaped = html.escape(text_out)
        return (
            "<!doctype html>"
            "<html><head><meta charset='utf-8'>"
            "<meta name='viewport' content='width=device-width, initial-scale=1'>"
            "<title>Ferret Report</title>"
            "<style>body{font-family:ui-monospace,Menlo,Consolas,monospace;margin:24px;}"
            "pre{white-space:pre-wrap;line-height:1.35;}"
            "</style></head><body>"
            "<h1>Ferret Report</h1>"
            f"<pre>{escaped}</pre>"
            "</body></html>"
        )
