"""Parsing of ``go list -m -json`` output and of module arguments."""

from __future__ import annotations

import json
import logging
import os
import posixpath
from dataclasses import dataclass
from typing import Any, Iterator

from .deps import BuildError, Replace, ReplacementPath, new_replace

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


@dataclass
class GoModule:
    """One module record as printed by ``go list -m -json``."""

    path: str = ""
    version: str = ""
    replace: "GoModule | None" = None
    main: bool = False
    dir: str = ""

    @classmethod
    def from_json(cls, value: Any) -> "GoModule":
        if not isinstance(value, dict):
            raise ValueError("expected a JSON object for a module")
        replace = value.get("Replace")
        return cls(
            path=value.get("Path") or "",
            version=value.get("Version") or "",
            replace=None if replace is None else cls.from_json(replace),
            main=bool(value.get("Main", False)),
            dir=value.get("Dir") or "",
        )


def iter_json_values(data: str | bytes) -> Iterator[Any]:
    """Yield each JSON value of a stream of concatenated values."""
    text = data.decode() if isinstance(data, bytes) else data
    pos = 0
    end = len(text)
    while True:
        while pos < end and text[pos].isspace():
            pos += 1
        if pos >= end:
            return
        value, pos = _DECODER.raw_decode(text, pos)
        yield value


def parse_go_list_json(
    data: str | bytes,
) -> tuple[str, str, list[Replace]]:
    """Return the main module, its directory and the replacements to carry over.

    The main module itself is replaced by its directory; relative
    replacement paths are resolved against the main module's directory.
    """
    current_module = ""
    module_dir = ""
    replacements: list[Replace] = []
    unjoined: list[int] = []

    for value in iter_json_values(data):
        mod = GoModule.from_json(value)
        if mod.main:
            current_module = mod.path
            module_dir = mod.dir
            replacements.append(new_replace(current_module, module_dir))
            continue
        if mod.replace is None:
            continue

        dst_path = mod.replace.path
        if mod.replace.version:
            dst = f"{dst_path}@{mod.replace.version}"
        elif os.path.isabs(dst_path):
            dst = dst_path
        elif module_dir:
            dst = os.path.normpath(os.path.join(module_dir, dst_path))
            logger.info("Resolved relative replacement %s to %s", dst_path, dst)
        else:
            # the main module's directory is not known yet
            dst = dst_path
            unjoined.append(len(replacements))
        replacements.append(new_replace(mod.path, dst))

    for idx in unjoined:
        unresolved = str(replacements[idx].new)
        resolved = os.path.normpath(os.path.join(module_dir, unresolved))
        logger.info(
            "Resolved previously-unjoined relative replacement %s to %s",
            unresolved,
            resolved,
        )
        replacements[idx] = Replace(replacements[idx].old, ReplacementPath(resolved))
    return current_module, module_dir, replacements


def _clean_slash_path(path: str) -> str:
    if not path:
        return ""
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def normalize_import_path(current_module: str, cwd: str, module_dir: str) -> str:
    """Return the import path of ``cwd`` inside the module rooted at ``module_dir``."""
    rest = cwd[len(module_dir):] if cwd.startswith(module_dir) else cwd
    rest = rest.replace(os.sep, "/")
    return _clean_slash_path("/".join(part for part in (current_module, rest) if part))


def split_with(arg: str) -> tuple[str, str, str]:
    """Split ``module[@version][=replacement]`` into its three parts.

    Module paths may contain ``@``; the last one separates the version.
    """
    module, _, replace = arg.partition("=")
    version = ""
    if "@" in module:
        module, _, version = module.rpartition("@")
    if not module:
        raise BuildError("module name is required")
    return module, version, replace