"""
CAMARA population density adapter for CrowdSafe.

This module provides the implementation of DensityProviderPort.
"""

from .client import PopulationDensityClient

__all__ = ["PopulationDensityClient"]
