"""Small HTTP-related constants shared across geoflux.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

DEFAULT_API_BASE_URL = "https://api.opencagedata.com/geocode/v1/json"
DEFAULT_TIMEOUT_S = 60.0

# Daily request ceiling reported for free-trial credentials.
FREE_TIER_RATE_LIMIT = 2500

RATE_LIMIT_HEADERS = ("X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")
