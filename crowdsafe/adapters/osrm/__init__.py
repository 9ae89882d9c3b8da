"""
OSRM routing adapter for CrowdSafe.

This module provides the implementation of PathfinderPort.
"""

from .client import OSRMPathfinder

__all__ = ["OSRMPathfinder"]
