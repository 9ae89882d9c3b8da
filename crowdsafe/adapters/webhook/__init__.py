"""
Webhook delivery adapter for CrowdSafe.

This module provides the implementation of WebhookPort.
"""

from .sender import WebhookSender

__all__ = ["WebhookSender"]
