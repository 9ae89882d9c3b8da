"""
Core domain models and pure functions for CrowdSafe.

This module contains the domain models and pure business logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import (
    Area, AlertEvent, Circle, DensityPoint, DensitySnapshot, FlowSample, FlowSeries,
    GeofenceRule, GeofenceRuleSpec, LegacyPolygon, Point, Polygon, RoutePlan, TokenCacheEntry
)
from .errors import (
    CrowdSafeError, DataUnavailable, PathfinderUnavailable, RuleNotFound,
    UpstreamAuthError, WebhookDeliveryError
)
from .normalize import ensure_closed, to_area
from .alert_policy import classify_level, build_alert_event, should_notify_webhook

__all__ = [
    "Area", "AlertEvent", "Circle", "DensityPoint", "DensitySnapshot", "FlowSample", "FlowSeries",
    "GeofenceRule", "GeofenceRuleSpec", "LegacyPolygon", "Point", "Polygon", "RoutePlan", "TokenCacheEntry",
    "CrowdSafeError", "DataUnavailable", "PathfinderUnavailable", "RuleNotFound",
    "UpstreamAuthError", "WebhookDeliveryError",
    "ensure_closed", "to_area", "classify_level", "build_alert_event", "should_notify_webhook",
]
