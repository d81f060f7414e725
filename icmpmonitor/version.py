"""Version information for ICMPmonitor."""

import os
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("icmpmonitor")
except PackageNotFoundError:
    # Running from a source checkout
    __version__ = "1.2.0"

__version_info__ = tuple(int(part) for part in __version__.split(".")[:3])

BANNER = f"ICMPmonitor v{__version__}"


def get_version() -> str:
    """Get the current version string."""
    return __version__


def get_version_info() -> dict:
    """Get detailed version information, including packaging build info."""
    return {
        "version": __version__,
        "build_date": os.getenv("ICMPMONITOR_BUILD_DATE"),
        "git_commit": os.getenv("ICMPMONITOR_GIT_COMMIT"),
    }
