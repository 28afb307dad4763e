"""Build targets and discovery of those the Go toolchain supports."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, replace

from .goenv import get_go


@dataclass
class Platform:
    """A build target: operating system, architecture and ARM version."""

    os: str = ""
    arch: str = ""
    arm: str = ""


@dataclass
class Compile(Platform):
    """Compilation parameters: a platform plus whether cgo is enabled."""

    cgo: bool = False

    def cgo_enabled(self) -> str:
        """Return the value for CGO_ENABLED: ``"1"`` or ``"0"``."""
        return "1" if self.cgo else "0"


def compiles_from_dist_list(output: str | bytes) -> list[Compile]:
    """Turn the JSON output of ``go tool dist list -json`` into build targets.

    ARM targets are expanded into one entry per supported ARM version.
    """
    dists = json.loads(output)
    if dists is None:
        return []
    if not isinstance(dists, list):
        raise ValueError("expected a JSON array of distributions")

    compiles: list[Compile] = []
    for dist in dists:
        if not isinstance(dist, dict):
            raise ValueError("expected a JSON object for each distribution")
        comp = Compile(
            os=dist.get("GOOS", ""),
            arch=dist.get("GOARCH", ""),
            cgo=bool(dist.get("CgoSupported", False)),
        )
        if comp.arch == "arm":
            # only linux supports ARMv5
            versions = ("5", "6", "7") if comp.os == "linux" else ("6", "7")
            compiles.extend(replace(comp, arm=version) for version in versions)
        else:
            compiles.append(comp)
    return compiles


def supported_platforms() -> list[Compile]:
    """Ask the Go toolchain for every target it can build for."""
    result = subprocess.run(
        [get_go(), "tool", "dist", "list", "-json"],
        check=True,
        capture_output=True,
    )
    return compiles_from_dist_list(result.stdout)