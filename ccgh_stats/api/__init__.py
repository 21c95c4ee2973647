"""
Client for the remote stats service.
"""

from .client import ApiError, Registration, StatsApiClient

__all__ = ["ApiError", "Registration", "StatsApiClient"]
