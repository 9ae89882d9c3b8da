"""
OAuth credential adapter for CrowdSafe.

This module provides the token exchange client and the coalescing
token cache that gates every upstream call.
"""

from .client import OAuthClient
from .token_cache import TokenCache

__all__ = ["OAuthClient", "TokenCache"]
