"""
Orchestrators for CrowdSafe.

This module contains the scheduler that drives periodic
geofence evaluation.
"""
from .scheduler import EvaluationScheduler

__all__ = ["EvaluationScheduler"]
