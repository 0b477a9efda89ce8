"""grammarlens version; hatch reads ``__version__`` from here at build time."""

from importlib.metadata import PackageNotFoundError, version

__version__ = "0.1.0"


def get_version() -> str:
    """Installed distribution version, or ``__version__`` when running from a source tree."""
    try:
        return version("grammarlens")
    except PackageNotFoundError:
        return __version__
