"""
Math notebook core: typed line documents, section-scoped context extraction,
and the reasoning-service client used to check work and produce hints.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("mathnb")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
