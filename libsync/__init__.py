"""LibSync client connectivity and session layer."""
from .context import ClientContext

__all__ = ["ClientContext"]
