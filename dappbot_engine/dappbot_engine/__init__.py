"""DappBot lifecycle engine: build completion, billing transitions and cleanup."""

__version__ = "0.4.0"
