"""Go toolchain selection and compilation target discovery from the environment."""

from __future__ import annotations

import os
import platform
import sys

_GOOS_BY_PLATFORM_PREFIX = (
    ("linux", "linux"),
    ("darwin", "darwin"),
    ("win32", "windows"),
    ("cygwin", "windows"),
    ("msys", "windows"),
    ("freebsd", "freebsd"),
    ("openbsd", "openbsd"),
    ("netbsd", "netbsd"),
    ("dragonfly", "dragonfly"),
    ("sunos", "solaris"),
    ("aix", "aix"),
)

_GOARCH_BY_MACHINE = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "arm": "arm",
    "armv5l": "arm",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "mips": "mips",
    "mipsel": "mipsle",
    "mips64": "mips64",
    "mips64el": "mips64le",
    "loongarch64": "loong64",
}


def get_go() -> str:
    """Return the go executable named by XCADDY_WHICH_GO, or ``go``."""
    return os.environ.get("XCADDY_WHICH_GO") or "go"


def host_goos() -> str:
    """Return the Go name of the operating system this process runs on."""
    name = sys.platform
    for prefix, goos in _GOOS_BY_PLATFORM_PREFIX:
        if name.startswith(prefix):
            return goos
    return name


def host_goarch() -> str:
    """Return the Go name of the architecture this process runs on."""
    machine = platform.machine().lower()
    return _GOARCH_BY_MACHINE.get(machine, machine)


def get_goos() -> str:
    """Return the target OS: GOOS if set, otherwise the host OS."""
    return os.environ.get("GOOS") or host_goos()


def get_goarch() -> str:
    """Return the target architecture: GOARCH if set, otherwise the host's."""
    return os.environ.get("GOARCH") or host_goarch()