"""Command line: build custom Caddy binaries or run Caddy with the current module."""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from importlib import metadata
from typing import Sequence

from .builder import Builder
from .deps import BuildError, Dependency, EmbedDir, Replace, new_replace
from .goenv import get_go, get_goarch, get_goos, host_goarch, host_goos
from .modlist import normalize_import_path, parse_go_list_json, split_with

logger = logging.getLogger(__name__)

PROG = "caddyforge"

_ROOT_HELP = f"""\
Usage:
  {PROG} <args...>
  {PROG} build [<caddy_version>] [--output <file>] [--with <module[@version][=replacement]>...]
        [--replace <module[@version]=replacement>...] [--embed <[alias]:path/to/dir>...]
  {PROG} version

{PROG} is a custom Caddy builder for advanced users and plugin developers.
It has two primary uses:
- Compile custom caddy binaries
- A replacement for `go run` while developing Caddy plugins
Any Caddy command (except help and version) is passed through to the
custom-built Caddy, notably `run` and `list-modules`.

Commands:
  build     Compile custom caddy binaries
  version   Prints the tool version

Flags:
  -h, --help      help for {PROG}
  -v, --version   version for {PROG}
"""

_BUILD_DESCRIPTION = """\
<caddy_version> is the core Caddy version to build; defaults to the CADDY_VERSION
environment variable or latest. This can be the keyword latest, which uses the
latest stable tag, or any git ref: a tag like v2.0.1, a branch like master, or
a commit hash.

--output changes the output file.
--with adds a plugin by Go module name, optionally with a version and/or a
local replacement; it may be given several times.
--replace is like --with but adds no import; it only writes a replace
directive to go.mod.
--embed embeds the contents of a directory into the executable; the directory
may be prefixed with an alias and a colon to place it in a subdirectory.
"""


@dataclass
class Settings:
    """Build settings taken from the environment."""

    caddy_version: str = ""
    race_detector: bool = False
    skip_build: bool = False
    skip_cleanup: bool = False
    debug: bool = False
    build_flags: str = ""
    mod_flags: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        """Read the settings from the process environment."""
        env = os.environ
        skip_build = env.get("XCADDY_SKIP_BUILD") == "1"
        return cls(
            caddy_version=env.get("CADDY_VERSION", ""),
            race_detector=env.get("XCADDY_RACE_DETECTOR") == "1",
            skip_build=skip_build,
            skip_cleanup=env.get("XCADDY_SKIP_CLEANUP") == "1" or skip_build,
            debug=env.get("XCADDY_DEBUG") == "1",
            build_flags=env.get("XCADDY_GO_BUILD_FLAGS", ""),
            mod_flags=env.get("XCADDY_GO_MOD_FLAGS", ""),
        )


def get_caddy_output_file() -> str:
    """Return the default output path, with ``.exe`` when targeting Windows."""
    name = "." + os.sep + "caddy"
    if get_goos() == "windows":
        name += ".exe"
    return name


def setcap_if_requested(output: str) -> None:
    """Allow the binary to bind low ports when XCADDY_SETCAP is ``1``."""
    if os.environ.get("XCADDY_SETCAP") != "1":
        return
    args = ["setcap", "cap_net_bind_service=+ep", output]
    skip_sudo = shutil.which("sudo") is None or os.environ.get("XCADDY_SUDO") == "0"
    command = args if skip_sudo else ["sudo", *args]
    logger.info("Setting capabilities (requires admin privileges): %s", command)
    try:
        subprocess.run(command, check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise BuildError(f"failed to setcap on the binary: {exc}") from exc


def handle_replace(orig: str, mod: str, ver: str, repl: str) -> Replace | None:
    """Return the replacement a ``--with``/``--replace`` value asks for, if any.

    Relative replacement paths are made absolute, since the build runs
    in another directory.
    """
    if not repl:
        return None
    if repl.startswith("."):
        repl = os.path.abspath(repl)
        logger.info("Resolved relative replacement %s to %s", orig, repl)
    return new_replace(str(Dependency(mod, ver)), repl)


def parse_embed_dirs(values: Sequence[str]) -> list[EmbedDir]:
    """Turn ``[alias:]path`` values into embed directories."""
    dirs = []
    for value in values:
        name, sep, path = value.partition(":")
        dirs.append(EmbedDir(path, name) if sep else EmbedDir(name, ""))
    return dirs


def tool_version() -> str:
    """Return the installed version of this tool, or ``unknown``."""
    try:
        return metadata.version(PROG)
    except metadata.PackageNotFoundError:
        return "unknown"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"{PROG} build",
        description=_BUILD_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument("caddy_version", nargs="?", default="")
    parser.add_argument("--output", default="", help="change the output file name")
    parser.add_argument(
        "--with",
        dest="with_",
        action="append",
        default=[],
        help="caddy modules package path to include in the build",
    )
    parser.add_argument(
        "--replace", action="append", default=[], help="like --with but for Go modules"
    )
    parser.add_argument(
        "--embed",
        action="append",
        default=[],
        help="embeds directories into the built Caddy executable",
    )
    return parser


def build_command(args: Sequence[str], settings: Settings) -> None:
    """Compile a custom Caddy binary as the ``build`` arguments describe."""
    options = _build_parser().parse_args(list(args))

    plugins: list[Dependency] = []
    replacements: list[Replace] = []
    for with_arg in options.with_:
        mod, ver, repl = split_with(with_arg)
        # a trailing slash is easy to paste from a URL but invalid for modules
        mod = mod.removesuffix("/")
        plugins.append(Dependency(mod, ver))
        replacement = handle_replace(with_arg, mod, ver, repl)
        if replacement is not None:
            replacements.append(replacement)

    for replace_arg in options.replace:
        mod, ver, repl = split_with(replace_arg)
        replacement = handle_replace(replace_arg, mod, ver, repl)
        if replacement is not None:
            replacements.append(replacement)

    caddy_version = options.caddy_version or settings.caddy_version
    output = options.output or get_caddy_output_file()

    builder = Builder(
        cgo=os.environ.get("CGO_ENABLED") == "1",
        caddy_version=caddy_version,
        plugins=plugins,
        replacements=replacements,
        race_detector=settings.race_detector,
        skip_build=settings.skip_build,
        skip_cleanup=settings.skip_cleanup,
        debug=settings.debug,
        build_flags=settings.build_flags,
        mod_flags=settings.mod_flags,
        embed_dirs=parse_embed_dirs(options.embed),
    )
    builder.build(output)

    if builder.skip_build:
        return

    setcap_if_requested(output)

    # prove the build works by printing its version
    if host_goos() == get_goos() and host_goarch() == get_goarch():
        if not os.path.isabs(output):
            output = "." + os.sep + output
        print()
        print(f"{output} version")
        subprocess.run([output, "version"], check=True)


def run_command(args: Sequence[str], settings: Settings) -> None:
    """Build Caddy with the module in the current directory and run it with ``args``."""
    bin_output = get_caddy_output_file()

    # the user's replace directives only apply to their own go.mod,
    # so they are carried over to the one being generated
    list_cmd = [get_go(), "list", "-mod=readonly", "-m", "-json", "all"]
    try:
        result = subprocess.run(list_cmd, check=True, stdout=subprocess.PIPE)
    except subprocess.CalledProcessError as exc:
        out = (exc.output or b"").decode(errors="replace")
        raise BuildError(f"exec {list_cmd}: {exc}: {out}") from exc
    except OSError as exc:
        raise BuildError(f"exec {list_cmd}: {exc}: ") from exc
    try:
        current_module, module_dir, replacements = parse_go_list_json(result.stdout)
    except ValueError as exc:
        raise BuildError(f"json parse error: {exc}") from exc

    try:
        cwd = os.getcwd()
    except OSError as exc:
        raise BuildError(f"unable to determine current directory: {exc}") from exc
    import_path = normalize_import_path(current_module, cwd, module_dir)

    builder = Builder(
        cgo=os.environ.get("CGO_ENABLED") == "1",
        caddy_version=settings.caddy_version,
        plugins=[Dependency(import_path)],
        replacements=replacements,
        race_detector=settings.race_detector,
        skip_build=settings.skip_build,
        skip_cleanup=settings.skip_cleanup,
        debug=settings.debug,
    )
    builder.build(bin_output)

    setcap_if_requested(bin_output)

    command = [bin_output, *args]
    logger.info("Running %s\n", command)
    proc = subprocess.Popen(command)
    try:
        code = proc.wait()
    finally:
        if settings.skip_cleanup:
            logger.info(
                "Skipping cleanup as requested; leaving artifact: %s", bin_output
            )
        else:
            try:
                os.remove(bin_output)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error("Deleting temporary binary %s: %s", bin_output, exc)
    if code != 0:
        raise subprocess.CalledProcessError(code, command)


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y/%m/%d %H:%M:%S",
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    _configure_logging()
    settings = Settings.from_env()
    try:
        if args and args[0] in ("-h", "--help", "help"):
            print(_ROOT_HELP, end="")
        elif args and args[0] in ("-v", "--version", "version"):
            print(tool_version())
        elif args and args[0] == "build":
            build_command(args[1:], settings)
        else:
            run_command(args, settings)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1
    except KeyboardInterrupt:
        logger.info("SIGINT: Shutting down")
        return 1
    except (BuildError, OSError, subprocess.CalledProcessError, TimeoutError) as exc:
        print(exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())