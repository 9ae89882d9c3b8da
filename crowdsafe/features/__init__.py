"""
Features for CrowdSafe.

Density aggregation, geofence alerting and route risk scoring.
"""
