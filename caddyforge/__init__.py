"""Build custom Caddy binaries with plugins, or run a plugin under development."""

__version__ = "0.1.0"