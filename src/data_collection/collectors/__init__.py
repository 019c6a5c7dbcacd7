"""
Data Collection Collectors Package

Enthält den API-Football Client und die Rate Limiter für externe API-Zugriffe.
"""

from .api_football import ApiFootballClient
from .base import DailyQuotaGuard, HttpCollector, RequestRateLimiter

__all__ = ["ApiFootballClient", "DailyQuotaGuard", "HttpCollector", "RequestRateLimiter"]
