"""Package version identifier."""

from __future__ import annotations

from importlib.metadata import version, PackageNotFoundError
from pathlib import Path

try:
    # Try to get version from installed package metadata
    __version__ = version("activitygrid")
except PackageNotFoundError:
    # Fall back to reading VERSION file (for development/editable installs)
    _version_file = Path(__file__).parent.parent.parent.parent / "VERSION"
    __version__ = _version_file.read_text().strip()
