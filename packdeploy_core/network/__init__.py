"""Network policy evaluation for fetches and listeners."""

from .policy import NetAllowList, NetworkPolicy, normalize_host

__all__ = ["NetAllowList", "NetworkPolicy", "normalize_host"]
