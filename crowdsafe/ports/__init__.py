"""
Port interfaces for CrowdSafe hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the core domain and external adapters.
"""

from .credentials import CredentialAuthorityPort
from .density import DensityProviderPort
from .pathfinder import PathfinderPort
from .alerts import AlertSubscriber, WebhookPort

__all__ = ["CredentialAuthorityPort", "DensityProviderPort", "PathfinderPort", "AlertSubscriber", "WebhookPort"]
