"""swarmcore — stimulus routing and bounded self-modification for agent populations."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("swarmcore")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
