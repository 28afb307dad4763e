[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "caddyforge"
version = "0.1.0"
description = "Build custom Caddy binaries with plugins, or run a plugin under development inside a custom Caddy"
requires-python = ">=3.10"
keywords = ["caddy", "build", "go", "plugins", "modules"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "semver>=3",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
caddyforge = "caddyforge.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["caddyforge"]

[tool.pytest.ini_options]
addopts = "-ra"
