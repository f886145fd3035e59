"""Application version."""

_VERSION = "develop"


def get_version() -> str:
    """Return the application version string."""
    return _VERSION