"""Module dependencies, replacements and Go module path helpers."""

from __future__ import annotations

import os
import posixpath
import re
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime

import semver

DEFAULT_CADDY_MODULE_PATH = "github.com/caddyserver/caddy"

# date format used in temporary folder names
_TEMP_FOLDER_TIME_FORMAT = "%Y-%m-%d-%H%M"

_MODULE_VERSION_RE = re.compile(r".+/v(\d+)\Z")


class BuildError(Exception):
    """Raised when a build cannot be prepared or carried out."""


@dataclass(frozen=True)
class Dependency:
    """A Go module path paired with an optional version."""

    package_path: str
    version: str = ""

    def __str__(self) -> str:
        if self.version:
            return f"{self.package_path}@{self.version}"
        return self.package_path


class ReplacementPath(str):
    """An old or new path in a Go module replacement directive."""

    def param(self) -> str:
        """Return the path in the form ``go mod edit`` accepts."""
        return self.replace(" ", "@", 1)


@dataclass(frozen=True)
class Replace:
    """A Go module replacement: ``old`` is replaced by ``new``."""

    old: ReplacementPath = ReplacementPath("")
    new: ReplacementPath = ReplacementPath("")

    def __post_init__(self) -> None:
        object.__setattr__(self, "old", ReplacementPath(self.old))
        object.__setattr__(self, "new", ReplacementPath(self.new))


@dataclass(frozen=True)
class EmbedDir:
    """A directory to embed, optionally under an alias name."""

    dir: str
    name: str = ""


def new_replace(old: str, new: str) -> Replace:
    """Create a replacement of module ``old`` by ``new``."""
    return Replace(ReplacementPath(old), ReplacementPath(new))


def _clean_path(path: str) -> str:
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def versioned_module_path(module_path: str, module_version: str) -> str:
    """Apply semantic import versioning to ``module_path``.

    A major version above 1 is appended as ``/vN``; a path that already
    ends in a different major version is an error. Versions that are not
    semantic (such as commit hashes) leave the path unchanged.
    """
    if not module_version:
        return module_path
    bare = module_version[1:] if module_version.startswith("v") else module_version
    try:
        version = semver.Version.parse(bare)
    except (ValueError, TypeError) as exc:
        # only an error if they were clearly trying to use a semantic version
        if module_version.startswith("v"):
            raise BuildError(f"{module_version}: {exc}") from exc
        return module_path
    major = version.major

    match = _MODULE_VERSION_RE.search(module_path)
    if match:
        if int(match.group(1)) != major:
            raise BuildError(
                f"versioned module path ({module_path}) and requested module "
                f"major version ({major}) diverge"
            )
    elif major > 1:
        module_path += f"/v{major}"

    return _clean_path(module_path)


def new_temp_folder() -> str:
    """Create a new temporary folder; the caller must remove it.

    On macOS the folder is made in the current directory, since builds
    inside the system temporary directory lose their linker flags there.
    """
    parent = os.path.abspath(".") if sys.platform == "darwin" else None
    stamp = datetime.now().strftime(_TEMP_FOLDER_TIME_FORMAT)
    return tempfile.mkdtemp(prefix=f"buildenv_{stamp}.", dir=parent)