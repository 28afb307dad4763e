import json
import subprocess

import pytest

from caddyforge.platforms import (
    Compile,
    Platform,
    compiles_from_dist_list,
    supported_platforms,
)

DIST_LIST = json.dumps(
    [
        {"GOOS": "darwin", "GOARCH": "arm64", "CgoSupported": True},
        {"GOOS": "linux", "GOARCH": "arm", "CgoSupported": True},
        {"GOOS": "windows", "GOARCH": "arm", "CgoSupported": False},
    ]
)


def test_cgo_enabled_values():
    assert Compile(cgo=True).cgo_enabled() == "1"
    assert Compile(cgo=False).cgo_enabled() == "0"


def test_compile_is_a_platform():
    comp = Compile(os="linux", arch="arm", arm="7", cgo=True)
    assert isinstance(comp, Platform)
    assert (comp.os, comp.arch, comp.arm) == ("linux", "arm", "7")


def test_dist_list_expands_arm_versions():
    compiles = compiles_from_dist_list(DIST_LIST)
    assert compiles == [
        Compile(os="darwin", arch="arm64", cgo=True),
        Compile(os="linux", arch="arm", arm="5", cgo=True),
        Compile(os="linux", arch="arm", arm="6", cgo=True),
        Compile(os="linux", arch="arm", arm="7", cgo=True),
        Compile(os="windows", arch="arm", arm="6", cgo=False),
        Compile(os="windows", arch="arm", arm="7", cgo=False),
    ]


def test_dist_list_accepts_bytes():
    assert compiles_from_dist_list(DIST_LIST.encode()) == compiles_from_dist_list(
        DIST_LIST
    )


def test_dist_list_null_is_empty():
    assert compiles_from_dist_list("null") == []


def test_dist_list_rejects_object():
    with pytest.raises(ValueError):
        compiles_from_dist_list('{"GOOS": "linux"}')


def test_dist_list_rejects_invalid_json():
    with pytest.raises(ValueError):
        compiles_from_dist_list("not json")


def test_supported_platforms_runs_go(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout=DIST_LIST.encode(), stderr=b"")

    monkeypatch.setenv("XCADDY_WHICH_GO", "mygo")
    monkeypatch.setattr(subprocess, "run", fake_run)
    result = supported_platforms()
    assert calls == [["mygo", "tool", "dist", "list", "-json"]]
    assert result == compiles_from_dist_list(DIST_LIST)


def test_supported_platforms_propagates_failure(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(subprocess.CalledProcessError):
        supported_platforms()