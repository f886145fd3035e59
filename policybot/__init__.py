"""Pull request context, membership and permission lookups against GitHub, and server configuration parsing."""

__version__ = "0.1.0"
__all__ = ["__version__"]