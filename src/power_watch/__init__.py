"""Watch for processes that hold the CPU hot for too long."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("power-watch")
except PackageNotFoundError:
    __version__ = "0.0.0"
