"""
CrowdSafe crowd density analytics service.

Density aggregation, geofence alerting and route risk scoring over
CAMARA population-density data.
"""

__version__ = "0.1.0"
