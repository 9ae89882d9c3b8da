"""
Adapters for CrowdSafe hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O against upstream HTTP services.
"""

from .oauth.client import OAuthClient
from .oauth.token_cache import TokenCache
from .camara.client import PopulationDensityClient
from .osrm.client import OSRMPathfinder
from .webhook.sender import WebhookSender

__all__ = ["OAuthClient", "TokenCache", "PopulationDensityClient", "OSRMPathfinder", "WebhookSender"]
