"""kairo — supervise agent processes and stream their output to observers."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("kairo")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
