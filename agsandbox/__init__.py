"""Building blocks for launching rootless podman sandboxes for coding agents."""

__version__ = "0.1.0"