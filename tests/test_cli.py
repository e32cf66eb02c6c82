from __future__ import annotations

import json
import logging
import os

import pytest

from ferret import cli
from ferret.engine.predicates import (
    AllOf,
    AnyOf,
    NamePredicate,
    RecentlyModifiedPredicate,
    WorldWritablePredicate,
)
from ferret.models.scan import KindFilter, OutputMode


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setattr("ferret.engine.traversal.pseudo_mountpoints", lambda: frozenset())
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _parse(*argv):
    return cli.build_parser().parse_args(list(argv))


def _request(*argv, cfg=None):
    args = _parse(*argv)
    config = cli.ConfigService()
    return cli.build_request(args, cfg or {}, config)


def test_check_defaults_to_filesystem_root():
    req = _request("suid")
    assert req.root == "/"
    assert req.mode is OutputMode.NORMAL
    assert req.workers == 1
    assert req.skip_pseudo_filesystems


def test_writable_kind_flags():
    assert _request("writable", "-d").predicate == WorldWritablePredicate(kinds=KindFilter.DIRECTORIES)
    assert _request("writable", "-f").predicate == WorldWritablePredicate(kinds=KindFilter.FILES)


def test_recent_window_flag_and_config_default():
    assert _request("recent", "/tmp", "-t", "15").predicate.window_minutes == 15
    req = _request("recent", "/tmp", cfg={"scan": {"recent_minutes": 5}})
    assert isinstance(req.predicate, RecentlyModifiedPredicate)
    assert req.predicate.window_minutes == 5


def test_flags_override_config():
    cfg = {"scan": {"workers": 2, "max_depth": 3, "skip_pseudo_filesystems": True}}
    req = _request("suid", "--workers", "6", "--include-pseudo-fs", cfg=cfg)
    assert req.workers == 6
    assert req.max_depth == 3
    assert not req.skip_pseudo_filesystems


def test_scan_combines_checks():
    req = _request("scan", "/srv", "-c", "suid", "-c", "writable")
    assert isinstance(req.predicate, AnyOf)
    req = _request("scan", "/srv", "-c", "suid", "-c", "sgid", "--match", "all")
    assert isinstance(req.predicate, AllOf)


@pytest.mark.parametrize(
    "argv",
    [
        ["suid", "-q", "-v"],
        ["bogus"],
        ["suid", "--max-depth", "0"],
        ["writable", "-d", "-f"],
        ["scan", "/srv"],
        ["suid", "-t", "5"],
    ],
)
def test_usage_errors_exit_2(argv, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    assert exc.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("fr ")


def test_invalid_root_exits_3(tmp_path, capsys):
    code = cli.main(["suid", str(tmp_path / "missing")])
    assert code == 3
    err = capsys.readouterr().err
    assert err.startswith("fr: error: ")


def test_file_root_exits_3(tmp_path, capsys):
    f = tmp_path / "f"
    f.write_text("x")
    assert cli.main(["configs", str(f)]) == 3


def test_configs_scan_end_to_end(tmp_path, capsys):
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "settings.yaml").write_text("a: 1")
    (tmp_path / "app" / "main.py").write_text("")
    (tmp_path / ".env").write_text("X=1")

    code = cli.main(["configs", str(tmp_path), "-q"])
    out, err = capsys.readouterr()
    assert code == 0
    assert out.splitlines() == [str(tmp_path / ".env"), str(tmp_path / "app" / "settings.yaml")]
    assert err == ""


def test_zero_matches_is_success(tmp_path, capsys):
    (tmp_path / "plain.txt").write_text("x")
    assert cli.main(["configs", str(tmp_path)]) == 0
    assert "configs: 0 matches" in capsys.readouterr().err


def test_output_file(tmp_path, capsys):
    (tmp_path / "id_rsa").write_text("k")
    out = tmp_path / "out" / "hits.txt"
    out.parent.mkdir()
    assert cli.main(["configs", str(tmp_path), "-q", "-o", str(out)]) == 0
    assert out.read_text(encoding="utf-8") == f"{tmp_path / 'id_rsa'}\n"
    assert capsys.readouterr().out == ""


def test_unwritable_output_exits_1(tmp_path, capsys):
    code = cli.main(["configs", str(tmp_path), "-o", str(tmp_path / "no" / "such" / "file")])
    assert code == 1
    err = capsys.readouterr().err
    assert "fr: error: cannot write results to" in err
    assert "output is incomplete" in err


def test_ls_and_stats_commands(tmp_path, capsys):
    (tmp_path / "d").mkdir()
    (tmp_path / "a.txt").write_text("hello")
    assert cli.main(["ls", str(tmp_path)]) == 0
    assert capsys.readouterr().out.splitlines() == ["a.txt", "d/"]

    assert cli.main(["stats", str(tmp_path), "-r"]) == 0
    out = capsys.readouterr().out
    assert f"Analyzing directory: {tmp_path}" in out
    assert "- total_files: 1" in out


def test_ls_missing_path_exits_3(tmp_path):
    assert cli.main(["ls", str(tmp_path / "missing")]) == 3


def test_log_file_option(tmp_path, capsys):
    log = tmp_path / "fr.log"
    assert cli.main(["--log-level", "info", "--log-file", str(log), "configs", str(tmp_path)]) == 0
    for h in logging.getLogger().handlers:
        h.close()
    text = log.read_text(encoding="utf-8")
    assert " - INFO - " in text
    assert "scanning" in text


def test_config_file_option(tmp_path, capsys):
    cfg = tmp_path / "cfg.json"
    cfg.write_text('{"scan": {"max_depth": 1}}', encoding="utf-8")
    tree = tmp_path / "tree"
    (tree / "sub").mkdir(parents=True)
    (tree / "sub" / "id_rsa").write_text("k")
    assert cli.main(["--config", str(cfg), "configs", str(tree), "-q"]) == 0
    assert capsys.readouterr().out == ""


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_writable_files_only(tmp_path, capsys):
    d = tmp_path / "open"
    d.mkdir()
    os.chmod(d, 0o777)
    f = tmp_path / "f"
    f.write_text("x")
    os.chmod(f, 0o666)
    assert cli.main(["writable", str(tmp_path), "-f", "-q"]) == 0
    assert capsys.readouterr().out.splitlines() == [str(f)]


def test_unwritable_log_file_exits_1(tmp_path, capsys):
    (tmp_path / "d").mkdir()
    code = cli.main(["--log-file", str(tmp_path / "nope" / "x.log"), "suid", str(tmp_path / "d")])
    assert code == 1
    err = capsys.readouterr().err
    assert err.startswith("fr: error: cannot open log file ")
    assert len(err.splitlines()) == 1


def test_unwritable_log_file_from_config_exits_1(tmp_path, capsys):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"logging": {"file": str(tmp_path / "nope" / "x.log")}}), encoding="utf-8")
    assert cli.main(["--config", str(cfg), "ls", str(tmp_path)]) == 1
    assert "fr: error: cannot open log file" in capsys.readouterr().err


def test_find_request():
    req = _request("find", "*.pem", "/srv", "-i", "-t", "file", "--min-size", "1K", "-m", "2", "-d", "3")
    assert req.root == "/srv"
    assert req.max_depth == 3
    assert not req.include_hidden
    assert isinstance(req.predicate, AllOf)
    names = [p.name for p in req.predicate.parts]
    assert names == ["name", "type", "size", "recent"]
    assert req.predicate.parts[3].window_minutes == 2 * 24 * 60


def test_find_defaults_to_current_directory_and_hidden_flag():
    req = _request("find", "notes", "-H")
    assert req.root == "."
    assert req.include_hidden
    assert isinstance(req.predicate, NamePredicate)


@pytest.mark.parametrize(
    "argv",
    [
        ["find", "[", "-r"],
        ["find", "x", "--min-size", "lots"],
        ["find", "x", "--min-size", "2M", "--max-size", "1M"],
        ["find", "x", "-t", "socket"],
    ],
)
def test_find_usage_errors_exit_2(argv, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    assert exc.value.code == 2


def test_find_end_to_end(tmp_path, capsys):
    (tmp_path / "keys").mkdir()
    (tmp_path / "keys" / "Server.PEM").write_bytes(b"x" * 2048)
    (tmp_path / "keys" / "client.pem").write_bytes(b"x")
    (tmp_path / ".cache").mkdir()
    (tmp_path / ".cache" / "old.pem").write_bytes(b"x" * 4096)
    (tmp_path / "pem-notes").mkdir()

    assert cli.main(["find", "*.pem", str(tmp_path), "-i", "-q"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        str(tmp_path / "keys" / "Server.PEM"),
        str(tmp_path / "keys" / "client.pem"),
    ]

    assert cli.main(["find", "pem", str(tmp_path), "-t", "dir", "-q"]) == 0
    assert capsys.readouterr().out.splitlines() == [str(tmp_path / "pem-notes")]

    assert cli.main(["find", r"\.pem$", str(tmp_path), "-r", "-H", "--min-size", "1K", "-v"]) == 0
    out, err = capsys.readouterr()
    assert out.splitlines() == [f"{tmp_path / '.cache' / 'old.pem'}\tfile, 4.0KB"]
    assert "find: 1 match under" in err
