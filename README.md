# caddyforge

A helper for building custom Caddy binaries and for developing Caddy plugins.
It prepares a temporary Go module that imports Caddy together with the
plugins you name, resolves versions with the `go` toolchain, and compiles the
result into a single executable.

A working Go toolchain must be on your `PATH` (or named by `XCADDY_WHICH_GO`).

## Installation

```
pip install .
```

## Building a custom Caddy

```
caddyforge build [<caddy_version>]
    [--output <file>]
    [--with <module[@version][=replacement]>...]
    [--replace <module[@version]=replacement>...]
    [--embed <[alias]:path/to/dir>...]
```

- `<caddy_version>` is the Caddy version to build: `latest`, a tag such as
  `v2.0.1`, a branch or a commit. It defaults to the `CADDY_VERSION`
  environment variable; with neither, `go get` picks the latest release.
- `--output` sets the output file; the default is `./caddy` (`./caddy.exe`
  when the target OS is Windows).
- `--with` adds a plugin by module path, optionally with a version and a
  local replacement. It may be given several times. A trailing `/` on the
  module path is dropped.
- `--replace` writes only a replace directive to the generated `go.mod`,
  without importing the module.
- `--embed` embeds a directory into the binary for use with the `embedded`
  file system; prefix it with `alias:` to place it in a subdirectory.

Relative replacement paths (those starting with `.`) are made absolute
before use, since the build runs in a temporary folder.

Examples:

```
caddyforge build v2.7.6 --with example.com/caddy-plugin@v1.2.3
caddyforge build --with example.com/caddy-plugin=../caddy-plugin --output ./my-caddy
```

After a successful build for the host platform, the new binary's `version`
output is printed to show it works.

## Developing a plugin

Run from inside your plugin's Go module, with any Caddy command and
arguments:

```
caddyforge run --config Caddyfile
caddyforge list-modules
```

The current package, the main module and any replace directives reported by
`go list -m -json all` are plugged into a freshly built Caddy, which is then
run with the arguments given and removed afterwards (unless cleanup is
skipped).

```
caddyforge version
caddyforge --help
```

print the installed version of this tool and a usage summary.

## Environment variables

| Variable | Effect |
| --- | --- |
| `CADDY_VERSION` | Default Caddy version to build |
| `XCADDY_WHICH_GO` | Go executable to use (default `go`) |
| `XCADDY_RACE_DETECTOR=1` | Build with the race detector (enables cgo) |
| `XCADDY_DEBUG=1` | Keep debug information for use with a debugger |
| `XCADDY_SKIP_BUILD=1` | Prepare the build environment but skip compiling; implies skipping cleanup |
| `XCADDY_SKIP_CLEANUP=1` | Leave the temporary build folder (and, when running, the binary) in place |
| `XCADDY_GO_BUILD_FLAGS` | Extra flags for `go build` and `go get`; when set, the default `-ldflags "-w -s" -trimpath` and build tags are not added |
| `XCADDY_GO_MOD_FLAGS` | Extra flags for `go mod` commands |
| `XCADDY_SETCAP=1` | Run `setcap cap_net_bind_service=+ep` on the result |
| `XCADDY_SUDO=0` | Do not use `sudo` for `setcap` |
| `GOOS`, `GOARCH`, `GOARM`, `CGO_ENABLED` | Target platform and cgo |

## Using it from Python

```python
from caddyforge.builder import Builder
from caddyforge.deps import Dependency

builder = Builder(
    caddy_version="v2.7.6",
    plugins=[Dependency("example.com/caddy-plugin", "v1.2.3")],
)
builder.build("./caddy")
```

`Builder` also takes `replacements` (see `caddyforge.deps.new_replace`),
`embed_dirs` (`caddyforge.deps.EmbedDir`), `timeout_get` and `timeout_build`
(seconds or `datetime.timedelta`), and the target fields `os`, `arch`, `arm`
and `cgo`. Failures raise `caddyforge.deps.BuildError`,
`subprocess.CalledProcessError` or `TimeoutError`.

`caddyforge.platforms.supported_platforms()` lists the targets the installed
Go toolchain can compile for, and `caddyforge.modlist.split_with()` splits a
`module[@version][=replacement]` argument into its parts.

## What it does not do

Builds for Windows do not get embedded version information or an icon; the
resulting executable carries no Windows resource data.