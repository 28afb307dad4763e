"""Custom Caddy builds from a version, a set of plugins and replacements."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import timedelta

from .deps import BuildError, Dependency, EmbedDir, Replace
from .environment import new_environment
from .goenv import get_goarch, get_goos
from .platforms import Compile

logger = logging.getLogger(__name__)


def _seconds(value: float | timedelta | None) -> float:
    if value is None:
        return 0.0
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


@dataclass
class Builder(Compile):
    """The configuration of a custom Caddy build.

    Timeouts are given in seconds or as :class:`datetime.timedelta`;
    zero means no timeout.
    """

    caddy_version: str = ""
    plugins: list[Dependency] = field(default_factory=list)
    replacements: list[Replace] = field(default_factory=list)
    timeout_get: float | timedelta = 0.0
    timeout_build: float | timedelta = 0.0
    race_detector: bool = False
    skip_cleanup: bool = False
    skip_build: bool = False
    debug: bool = False
    build_flags: str = ""
    mod_flags: str = ""
    embed_dirs: list[EmbedDir] = field(default_factory=list)

    def build(self, output_file: str) -> None:
        """Build Caddy as configured and write the binary to ``output_file``."""
        timeout = _seconds(self.timeout_build)
        deadline = time.monotonic() + timeout if timeout > 0 else None

        if not output_file:
            raise BuildError("output file path is required")
        # the go command runs in a temporary folder, so the output
        # path must be absolute to land where the user expects
        abs_output_file = os.path.abspath(output_file)
        logger.info("absolute output file path: %s", abs_output_file)

        target_os = self.os or get_goos()
        target_arch = self.arch or get_goarch()
        target_arm = self.arm or os.environ.get("GOARM", "")

        with new_environment(self, deadline) as build_env:
            if self.skip_build:
                logger.info("Skipping build as requested")
                return

            env = dict(os.environ)
            env["GOOS"] = target_os
            env["GOARCH"] = target_arch
            env["GOARM"] = target_arm
            cgo = self.cgo
            if self.race_detector and not cgo:
                logger.warning(
                    "Enabling cgo because it is required by the race detector"
                )
                cgo = True
            env["CGO_ENABLED"] = Compile(cgo=cgo).cgo_enabled()

            logger.info("Building Caddy")

            # keep go.mod and go.sum consistent with the module's requirements
            build_env.run_command(build_env.new_go_mod_command("tidy", "-e"), deadline)

            command = build_env.new_go_build_command("build", "-o", abs_output_file)
            if self.debug:
                # keep what a debugger needs
                command.extend(["-gcflags", "all=-N -l"])
            elif not build_env.build_flags:
                command.extend(
                    [
                        "-ldflags",
                        "-w -s",
                        "-trimpath",
                        "-tags",
                        "nobadger,nomysql,nopgx",
                    ]
                )
            if self.race_detector:
                command.append("-race")
            build_env.run_command(command, deadline, env=env)

        logger.info("Build complete: %s", output_file)