"""Temporary Go module environments in which custom Caddy builds are made."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import timedelta
from string import Template
from typing import Any, Iterable, Sequence

from .deps import (
    DEFAULT_CADDY_MODULE_PATH,
    BuildError,
    Dependency,
    new_temp_folder,
    versioned_module_path,
)
from .fileops import copy_tree
from .goenv import get_go

logger = logging.getLogger(__name__)

GO_BUILD_COMMANDS = frozenset(
    {"build", "clean", "get", "install", "list", "run", "test"}
)

_MAIN_MODULE_HEAD = Template(
    """package main

import (
\tcaddycmd "${caddy_module}/cmd"

\t// plug in Caddy modules here
\t_ "${caddy_module}/modules/standard\""""
)

_MAIN_MODULE_TAIL = """
)

func main() {
\tcaddycmd.Main()
}
"""

_EMBED_MODULE = Template(
    """package main

import (
\t"embed"
\t"io/fs"
\t"strings"

\t"${caddy_module}"
\t"${caddy_module}/caddyconfig/caddyfile"
)

// embedded holds the static files from the files subfolder.
//
//go:embed files
var embedded embed.FS

// files is the file system served by the module.
var files fs.FS = embedded

// topFolder is the root folder name that go:embed keeps in paths.
const topFolder = "files"

func init() {
\tcaddy.RegisterModule(FS{})
\tstripFolderPrefix()
}

// stripFolderPrefix makes the contents of topFolder appear at the root
// when it is the only entry of the embedded file system.
func stripFolderPrefix() error {
\tif f, err := files.Open("."); err == nil {
\t\tdefer f.Close()

\t\tif dir, ok := f.(fs.ReadDirFile); ok {
\t\t\tentries, err := dir.ReadDir(2)
\t\t\tif err == nil &&
\t\t\t\tlen(entries) == 1 &&
\t\t\t\tentries[0].IsDir() &&
\t\t\t\tentries[0].Name() == topFolder {
\t\t\t\tif sub, err := fs.Sub(embedded, topFolder); err == nil {
\t\t\t\t\tfiles = sub
\t\t\t\t}
\t\t\t}
\t\t}
\t}
\treturn nil
}

// FS is a Caddy module and fs.FS over the embedded files.
type FS struct{}

// CaddyModule returns the Caddy module information.
func (FS) CaddyModule() caddy.ModuleInfo {
\treturn caddy.ModuleInfo{
\t\tID:  "caddy.fs.embedded",
\t\tNew: func() caddy.Module { return new(FS) },
\t}
}

// Open opens a file, ignoring leading and trailing slashes.
func (FS) Open(name string) (fs.File, error) {
\tname = strings.Trim(name, "/")
\treturn files.Open(name)
}

// UnmarshalCaddyfile lets the module be used in a Caddyfile.
func (FS) UnmarshalCaddyfile(d *caddyfile.Dispenser) error { return nil }

var (
\t_ fs.FS                 = (*FS)(nil)
\t_ caddyfile.Unmarshaler = (*FS)(nil)
)
"""
)


def render_main_module(caddy_module: str, plugins: Iterable[str]) -> str:
    """Return the main.go source that plugs ``plugins`` into Caddy."""
    head = _MAIN_MODULE_HEAD.substitute(caddy_module=caddy_module)
    imports = "".join(f'\n\t_ "{plugin}"' for plugin in plugins)
    return head + imports + _MAIN_MODULE_TAIL


def render_embed_module(caddy_module: str) -> str:
    """Return the embed.go source of the embedded file-system module."""
    return _EMBED_MODULE.substitute(caddy_module=caddy_module)


def parse_and_append_flags(args: Sequence[str], flags: str) -> list[str]:
    """Return ``args`` with the shell-split ``flags`` appended.

    Flags that cannot be split are logged and ignored.
    """
    result = list(args)
    if not flags.strip():
        return result
    try:
        result.extend(shlex.split(flags))
    except ValueError:
        logger.error("Splitting arguments failed: %s", flags)
    return result


def _seconds(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise TimeoutError("context deadline exceeded")


@dataclass
class Environment:
    """A prepared temporary Go module in which Caddy is built."""

    caddy_version: str = ""
    plugins: list[Dependency] = field(default_factory=list)
    caddy_module_path: str = ""
    temp_folder: str = ""
    timeout_go_get: float = 0.0
    skip_cleanup: bool = False
    build_flags: str = ""
    mod_flags: str = ""

    def close(self) -> None:
        """Remove the temporary folder unless cleanup is skipped."""
        if self.skip_cleanup:
            logger.info(
                "Skipping cleanup as requested; leaving folder intact: %s",
                self.temp_folder,
            )
            return
        logger.info("Cleaning up temporary folder: %s", self.temp_folder)
        try:
            shutil.rmtree(self.temp_folder)
        except FileNotFoundError:
            pass

    def __enter__(self) -> "Environment":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def new_go_build_command(self, go_command: str, *args: str) -> list[str]:
        """Return the argument list of a go subcommand with the build flags.

        Only build, clean, get, install, list, run and test are accepted.
        """
        if go_command not in GO_BUILD_COMMANDS:
            raise BuildError(f"unsupported command of 'go': {go_command}")
        command = parse_and_append_flags([get_go(), go_command], self.build_flags)
        command.extend(args)
        return command

    def new_go_mod_command(self, *args: str) -> list[str]:
        """Return the argument list of ``go mod`` with the mod flags appended."""
        return parse_and_append_flags([get_go(), "mod", *args], self.mod_flags)

    def run_command(
        self,
        args: Sequence[str],
        deadline: float | None = None,
        env: dict[str, str] | None = None,
        capture: bool = False,
    ) -> str | None:
        """Run a command in the temporary folder.

        ``deadline`` is a :func:`time.monotonic` instant after which the
        command is killed and :class:`TimeoutError` raised. With ``capture``
        the standard output is returned instead of passed through.
        """
        timeout = None if deadline is None else deadline - time.monotonic()
        logger.info(
            "exec (timeout=%s): %s",
            "0s" if timeout is None else f"{max(timeout, 0.0):.3f}s",
            list(args),
        )
        proc = subprocess.Popen(
            list(args),
            cwd=self.temp_folder or None,
            env=env,
            stdout=subprocess.PIPE if capture else None,
        )
        try:
            out, _ = proc.communicate(
                timeout=None if timeout is None else max(timeout, 0.0)
            )
        except subprocess.TimeoutExpired:
            _stop(proc)
            raise TimeoutError("context deadline exceeded") from None
        except KeyboardInterrupt:
            _stop(proc)
            raise
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(proc.returncode, list(args), output=out)
        if capture:
            return (out or b"").decode()
        return None

    def exec_go_get(
        self,
        module_path: str,
        module_version: str,
        caddy_module_path: str,
        caddy_version: str,
        deadline: float | None = None,
    ) -> None:
        """Run ``go get -v`` for a module, pinning Caddy alongside it if given."""
        mod = f"{module_path}@{module_version}" if module_version else module_path
        caddy = f"{caddy_module_path}@{caddy_version}" if caddy_version else caddy_module_path
        command = self.new_go_build_command("get", "-v")
        # an empty extra argument would break "go get"
        command.extend([mod, caddy] if caddy else [mod])
        self.run_command(command, deadline)


def _stop(proc: subprocess.Popen) -> None:
    proc.kill()
    try:
        proc.communicate(timeout=15)
    except subprocess.TimeoutExpired:
        pass


def new_environment(builder: Any, deadline: float | None = None) -> Environment:
    """Prepare a temporary Go module for the build ``builder`` describes.

    The caller owns the returned environment and must close it.
    """
    caddy_version = builder.caddy_version or ""
    caddy_module_path = DEFAULT_CADDY_MODULE_PATH
    # assume Caddy v2 if no semantic version is given
    if not caddy_version.startswith("v") or "." not in caddy_version:
        caddy_module_path += "/v2"
    caddy_module_path = versioned_module_path(caddy_module_path, caddy_version)

    plugins = [
        Dependency(versioned_module_path(p.package_path, p.version), p.version)
        for p in builder.plugins or ()
    ]

    main_source = render_main_module(
        caddy_module_path, [p.package_path for p in plugins]
    )

    temp_folder = new_temp_folder()
    try:
        return _prepare(
            builder, deadline, caddy_module_path, plugins, main_source, temp_folder
        )
    except BaseException:
        shutil.rmtree(temp_folder, ignore_errors=True)
        raise


def _prepare(
    builder: Any,
    deadline: float | None,
    caddy_module_path: str,
    plugins: list[Dependency],
    main_source: str,
    temp_folder: str,
) -> Environment:
    logger.info("Temporary folder: %s", temp_folder)

    main_path = os.path.join(temp_folder, "main.go")
    logger.info("Writing main module: %s\n%s", main_path, main_source)
    with open(main_path, "w", encoding="utf-8") as handle:
        handle.write(main_source)

    for embed in builder.embed_dirs or ():
        copy_tree(embed.dir, os.path.join(temp_folder, "files", embed.name))
        if not os.path.exists(embed.dir):
            raise BuildError(f"embed directory does not exist: {embed.dir}")
        logger.info("Embedding directory: %s", embed.dir)
        embed_source = render_embed_module(caddy_module_path)
        embed_path = os.path.join(temp_folder, "embed.go")
        logger.info("Writing 'embedded' module: %s\n%s", embed_path, embed_source)
        with open(embed_path, "w", encoding="utf-8") as handle:
            handle.write(embed_source)

    env = Environment(
        caddy_version=builder.caddy_version or "",
        plugins=plugins,
        caddy_module_path=caddy_module_path,
        temp_folder=temp_folder,
        timeout_go_get=_seconds(builder.timeout_get),
        skip_cleanup=bool(builder.skip_cleanup),
        build_flags=builder.build_flags or "",
        mod_flags=builder.mod_flags or "",
    )

    logger.info("Initializing Go module")
    env.run_command([*env.new_go_mod_command("init"), "caddy"], deadline)

    # replacements come before pinning versions
    replaced: dict[str, str] = {}
    for repl in builder.replacements or ():
        logger.info("Replace %s => %s", repl.old, repl.new)
        replaced[str(repl.old)] = str(repl.new)
    if replaced:
        command = env.new_go_mod_command("edit")
        for old, new in replaced.items():
            command.extend(["-replace", f"{old}={new}"])
        env.run_command(command, deadline)

    _check_deadline(deadline)

    # "go get" may have its own timeout, independent of the build's
    if env.timeout_go_get > 0:
        deadline = time.monotonic() + env.timeout_go_get

    logger.info("Pinning versions")
    env.exec_go_get(caddy_module_path, env.caddy_version, "", "", deadline)
    for plugin in plugins:
        if any(plugin.package_path.startswith(old) for old in replaced):
            continue
        # pass the Caddy version too so the plugin cannot upgrade it
        env.exec_go_get(
            plugin.package_path,
            plugin.version,
            caddy_module_path,
            env.caddy_version,
            deadline,
        )
        _check_deadline(deadline)

    # an empty "go get" can resolve ambiguities introduced by plugins
    env.exec_go_get("", "", "", "", deadline)

    logger.info("Build environment ready")
    return env