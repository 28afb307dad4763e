import json
import os
import shutil
import stat
import subprocess
import sys

import pytest

from caddyforge.builder import Builder
from caddyforge.deps import BuildError, Dependency

FAKE_GO = """#!{python}
import json, os, sys
record = {{
    "args": sys.argv[1:],
    "cwd": os.getcwd(),
    "goos": os.environ.get("GOOS"),
    "goarch": os.environ.get("GOARCH"),
    "cgo": os.environ.get("CGO_ENABLED"),
}}
with open(os.environ["FAKE_GO_LOG"], "a") as handle:
    handle.write(json.dumps(record) + "\\n")
sys.exit(int(os.environ.get("FAKE_GO_EXIT", "0")))
"""

DEFAULT_FLAGS = ["-ldflags", "-w -s", "-trimpath", "-tags", "nobadger,nomysql,nopgx"]


@pytest.fixture
def fake_go(tmp_path, monkeypatch):
    script = tmp_path / "fakego"
    script.write_text(FAKE_GO.format(python=sys.executable))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    log = tmp_path / "calls.log"
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("XCADDY_WHICH_GO", str(script))
    monkeypatch.setenv("FAKE_GO_LOG", str(log))
    monkeypatch.delenv("FAKE_GO_EXIT", raising=False)
    monkeypatch.delenv("GOARM", raising=False)

    def calls():
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines()]

    return calls


def _build_calls(calls):
    return [c for c in calls if c["args"][:1] == ["build"]]


def test_empty_output_file_is_an_error():
    with pytest.raises(BuildError):
        Builder().build("")


def test_full_build_sequence(fake_go, tmp_path):
    output = tmp_path / "out" / "caddy"
    Builder(os="linux", arch="arm64").build(str(output))
    calls = fake_go()

    assert calls[0]["args"] == ["mod", "init", "caddy"]
    assert ["get", "-v", "github.com/caddyserver/caddy/v2"] in [c["args"] for c in calls]
    assert ["mod", "tidy", "-e"] in [c["args"] for c in calls]

    build = calls[-1]
    assert build["args"] == ["build", "-o", os.path.abspath(str(output)), *DEFAULT_FLAGS]
    assert build["goos"] == "linux"
    assert build["goarch"] == "arm64"
    assert build["cgo"] == "0"
    # the temporary folder is removed afterwards
    assert not os.path.exists(build["cwd"])


def test_debug_build_keeps_symbols(fake_go, tmp_path):
    output = str(tmp_path / "caddy")
    Builder(os="linux", arch="amd64", debug=True).build(output)
    builds = _build_calls(fake_go())
    assert [b["args"] for b in builds] == [
        ["build", "-o", os.path.abspath(output), "-gcflags", "all=-N -l"]
    ]


def test_race_detector_enables_cgo(fake_go, tmp_path):
    output = str(tmp_path / "caddy")
    Builder(os="linux", arch="amd64", race_detector=True).build(output)
    builds = _build_calls(fake_go())
    assert [b["args"] for b in builds] == [
        ["build", "-o", os.path.abspath(output), *DEFAULT_FLAGS, "-race"]
    ]
    assert [b["cgo"] for b in builds] == ["1"]


def test_custom_build_flags_replace_defaults(fake_go, tmp_path):
    output = str(tmp_path / "caddy")
    Builder(os="linux", arch="amd64", build_flags="-v").build(output)
    build = _build_calls(fake_go())[0]
    assert build["args"] == ["build", "-v", "-o", os.path.abspath(output)]


def test_skip_build_runs_no_compilation(fake_go, tmp_path):
    output = str(tmp_path / "caddy")
    Builder(os="linux", arch="amd64", skip_build=True).build(output)
    calls = fake_go()
    all_args = [c["args"] for c in calls]
    assert all_args[0] == ["mod", "init", "caddy"]
    assert _build_calls(calls) == []
    assert ["mod", "tidy", "-e"] not in all_args
    assert [a for a in all_args if os.path.abspath(output) in a] == []


def test_failing_go_raises_and_cleans_up(fake_go, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_GO_EXIT", "3")
    with pytest.raises(subprocess.CalledProcessError) as info:
        Builder(os="linux", arch="amd64").build(str(tmp_path / "caddy"))
    assert info.value.returncode == 3
    calls = fake_go()
    assert len(calls) == 1
    assert not os.path.exists(calls[0]["cwd"])


def test_plugins_are_pinned_with_caddy(fake_go, tmp_path):
    output = str(tmp_path / "caddy")
    builder = Builder(
        os="linux",
        arch="amd64",
        plugins=[Dependency("example.com/plugin", "v2.1.0")],
        skip_cleanup=True,
    )
    builder.build(output)
    calls = fake_go()
    folder = calls[0]["cwd"]
    try:
        with open(os.path.join(folder, "main.go"), encoding="utf-8") as handle:
            main_go = handle.read()
    finally:
        shutil.rmtree(folder, ignore_errors=True)

    all_args = [c["args"] for c in calls]
    assert [
        "get",
        "-v",
        "example.com/plugin/v2@v2.1.0",
        "github.com/caddyserver/caddy/v2",
    ] in all_args
    assert '_ "example.com/plugin/v2"' in main_go
    assert all_args[-1] == ["build", "-o", os.path.abspath(output), *DEFAULT_FLAGS]