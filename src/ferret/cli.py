from __future__ import annotations

import argparse
import logging
import os
import sys
from importlib import metadata
from typing import Any

from ferret.collectors.filesystem_collector import FilesystemCollector
from ferret.engine.predicates import (
    CHECKS,
    FIND_KINDS,
    Predicate,
    build_find_predicate,
    build_predicate,
    combine,
)
from ferret.engine.traversal import Scanner
from ferret.errors import FerretError, InvalidRootError, SinkWriteError
from ferret.formatting import parse_size
from ferret.models.common import STATUS_INTERRUPTED
from ferret.models.scan import KindFilter, OutputMode, ScanRequest
from ferret.services.config_service import ConfigService
from ferret.services.listing_service import ListingOptions, ListingService
from ferret.services.report_service import ReportService

logger = logging.getLogger(__name__)

PROG = "fr"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_ROOT = 3
EXIT_INTERRUPTED = 130

CHECK_HELP = {
    "suid": "regular files with the set-user-ID bit",
    "sgid": "regular files with the set-group-ID bit",
    "writable": "files and directories writable by any user",
    "caps": "files carrying Linux file capabilities",
    "configs": "files whose names look like credential or config files",
    "recent": "entries modified within a time window",
}


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def _version() -> str:
    try:
        return metadata.version("ferret")
    except metadata.PackageNotFoundError:
        return "0+unknown"


def _positive(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return n


def _size(value: str) -> int:
    try:
        return parse_size(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _path_argument(p: argparse.ArgumentParser, default: str | None) -> None:
    if default is None:
        p.add_argument("path", help="directory to scan")
    else:
        p.add_argument("path", nargs="?", default=default, help=f"directory to scan (default: {default})")


def _scan_flags(p: argparse.ArgumentParser, depth_flags: tuple[str, ...] = ("--max-depth",)) -> None:
    noise = p.add_mutually_exclusive_group()
    noise.add_argument("-q", "--quiet", action="store_true", help="print matching paths only")
    noise.add_argument("-v", "--verbose", action="store_true", help="print a detail column and unreadable entries")
    p.add_argument("-o", "--output", metavar="FILE", help="write matches to FILE instead of stdout")
    p.add_argument(
        *depth_flags, dest="max_depth", type=_positive, metavar="N", help="do not descend deeper than N levels"
    )
    p.add_argument("--workers", type=_positive, metavar="N", help="walk top-level subtrees with N threads")
    p.add_argument(
        "--include-pseudo-fs",
        action="store_true",
        help="descend into /proc, /sys and other pseudo filesystems",
    )


def _scan_options(path_default: str | None) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    _path_argument(p, path_default)
    _scan_flags(p)
    return p


def _kind_options(p: argparse.ArgumentParser) -> None:
    kinds = p.add_mutually_exclusive_group()
    kinds.add_argument("-d", "--dirs", action="store_true", help="directories only")
    kinds.add_argument("-f", "--files", action="store_true", help="files only")


def _window_option(p: argparse.ArgumentParser) -> None:
    p.add_argument("-t", "--time", type=_positive, metavar="MINUTES", help="modification window (default: 60)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROG, description="Find files with risky permissions and metadata.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", help="also write log records to this file")
    parser.add_argument("--config", help="config file (default: $XDG_CONFIG_HOME/ferret/config.json)")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    common = _scan_options("/")
    for check in CHECKS:
        sp = sub.add_parser(check, parents=[common], help=CHECK_HELP[check])
        if check == "writable":
            _kind_options(sp)
        if check == "recent":
            _window_option(sp)

    sp = sub.add_parser("scan", parents=[_scan_options(None)], help="combine several checks in one walk")
    sp.add_argument(
        "-c",
        "--check",
        dest="checks",
        action="append",
        choices=CHECKS,
        required=True,
        help="check to run (repeatable)",
    )
    sp.add_argument("--match", choices=("any", "all"), default="any", help="how to combine checks (default: any)")
    _kind_options(sp)
    _window_option(sp)

    sp = sub.add_parser("find", help="find entries by name, type, size and age")
    sp.add_argument("pattern", help="glob (substring when it has no wildcards) or, with -r, a regular expression")
    _path_argument(sp, ".")
    _scan_flags(sp, depth_flags=("-d", "--max-depth"))
    sp.add_argument("-i", "--ignore-case", action="store_true", help="case-insensitive name matching")
    sp.add_argument("-r", "--regex", action="store_true", help="treat PATTERN as a regular expression")
    sp.add_argument("-t", "--type", dest="entry_type", choices=tuple(FIND_KINDS), help="entry type")
    sp.add_argument("--min-size", type=_size, metavar="SIZE", help="minimum file size, e.g. 500K, 1M, 2G")
    sp.add_argument("--max-size", type=_size, metavar="SIZE", help="maximum file size, e.g. 500K, 1M, 2G")
    sp.add_argument("-m", "--modified-days", type=_positive, metavar="DAYS", help="modified within the last DAYS days")
    sp.add_argument("-H", "--hidden", action="store_true", help="include hidden entries")

    sp = sub.add_parser("ls", help="list a directory with permission details")
    sp.add_argument("path", nargs="?", default=".")
    sp.add_argument("-a", "--all", action="store_true", help="include hidden entries")
    sp.add_argument("-l", "--long", action="store_true", help="long format")
    sp.add_argument("-R", "--recursive", action="store_true", help="list subdirectories as a tree")
    sp.add_argument("-H", "--human", action="store_true", help="human-readable sizes")
    sp.add_argument("-e", "--explain", action="store_true", help="spell out permission bits")

    sp = sub.add_parser("stats", help="summarize sizes and file types under a directory")
    sp.add_argument("path", nargs="?", default=".")
    sp.add_argument("-r", "--recursive", action="store_true", help="include subdirectories")
    sp.add_argument("-H", "--hidden", action="store_true", help="include hidden entries")
    sp.add_argument("-v", "--verbose", action="store_true", help="show notes about unreadable entries")
    return parser


def _output_mode(args: argparse.Namespace) -> OutputMode:
    if args.quiet:
        return OutputMode.QUIET
    if args.verbose:
        return OutputMode.VERBOSE
    return OutputMode.NORMAL


def _kind_filter(args: argparse.Namespace) -> KindFilter:
    if getattr(args, "dirs", False):
        return KindFilter.DIRECTORIES
    if getattr(args, "files", False):
        return KindFilter.FILES
    return KindFilter.ANY


def _find_predicate(args: argparse.Namespace) -> Predicate:
    return build_find_predicate(
        args.pattern,
        regex=args.regex,
        ignore_case=args.ignore_case,
        kind=args.entry_type,
        min_bytes=args.min_size,
        max_bytes=args.max_size,
        modified_days=args.modified_days,
    )


def _check_predicate(args: argparse.Namespace, cfg: dict[str, Any], config: ConfigService) -> Predicate:
    window = getattr(args, "time", None) or config.get(cfg, "scan", "recent_minutes")
    kinds = _kind_filter(args)
    checks = args.checks if args.command == "scan" else [args.command]
    return combine(
        [build_predicate(c, kinds=kinds, window_minutes=int(window)) for c in dict.fromkeys(checks)],
        mode=getattr(args, "match", "any"),
    )


def build_request(args: argparse.Namespace, cfg: dict[str, Any], config: ConfigService) -> ScanRequest:
    workers = args.workers or config.get(cfg, "scan", "workers")
    max_depth = args.max_depth if args.max_depth is not None else config.get(cfg, "scan", "max_depth")
    skip_pseudo = bool(config.get(cfg, "scan", "skip_pseudo_filesystems")) and not args.include_pseudo_fs

    if args.command == "find":
        predicate = _find_predicate(args)
    else:
        predicate = _check_predicate(args, cfg, config)
    return ScanRequest(
        root=args.path,
        predicate=predicate,
        max_depth=int(max_depth) if max_depth is not None else None,
        mode=_output_mode(args),
        output_path=args.output,
        workers=max(1, int(workers)),
        skip_pseudo_filesystems=skip_pseudo,
        include_hidden=args.hidden if args.command == "find" else True,
    )


def _error(msg: str) -> None:
    print(f"{PROG}: error: {msg}", file=sys.stderr)


def run_scan(args: argparse.Namespace, cfg: dict[str, Any], config: ConfigService) -> int:
    request = build_request(args, cfg, config)
    reporter = ReportService(mode=request.mode, output_path=request.output_path)
    result = Scanner(request).scan()
    check = "+".join(args.checks) if args.command == "scan" else args.command
    summary = reporter.report_scan(result, root=request.root, check=check)
    if summary.status == STATUS_INTERRUPTED:
        return EXIT_INTERRUPTED
    return EXIT_OK


def run_ls(args: argparse.Namespace) -> int:
    opts = ListingOptions(
        show_all=args.all,
        long_format=args.long,
        recursive=args.recursive,
        human_readable=args.human,
        explain_perms=args.explain,
    )
    for line in ListingService().render(args.path, opts):
        print(line)
    return EXIT_OK


def run_stats(args: argparse.Namespace) -> int:
    collector = FilesystemCollector(scan_dir=args.path, recursive=args.recursive, include_hidden=args.hidden)
    res = collector.collect()
    reporter = ReportService()
    sys.stdout.write(reporter.render_stats(res, verbose=args.verbose))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "find":
        try:
            _find_predicate(args)
        except ValueError as e:
            parser.error(str(e))

    config = ConfigService.at(args.config)
    cfg = config.load()
    log_file = args.log_file or config.get(cfg, "logging", "file")
    try:
        setup_logging(args.log_level or config.get(cfg, "logging", "level"), log_file)
    except OSError as e:
        _error(f"cannot open log file {log_file}: {e.strerror or e}")
        return EXIT_ERROR

    reconfigure = getattr(sys.stdout, "reconfigure", None)
    if reconfigure is not None:
        reconfigure(errors="surrogateescape")

    try:
        if args.command == "ls":
            return run_ls(args)
        if args.command == "stats":
            return run_stats(args)
        return run_scan(args, cfg, config)
    except InvalidRootError as e:
        _error(str(e))
        return EXIT_INVALID_ROOT
    except SinkWriteError as e:
        _error(f"{e}; output is incomplete")
        return EXIT_ERROR
    except BrokenPipeError:
        # the reader went away; keep the interpreter from reporting it again at exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EXIT_OK
    except KeyboardInterrupt:
        _error("interrupted")
        return EXIT_INTERRUPTED
    except FerretError as e:
        logger.debug("fatal error", exc_info=True)
        _error(str(e))
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
