"""
Metrics definitions for CrowdSafe.

This module defines Prometheus metrics for monitoring token exchange,
density queries, geofence evaluation and route planning.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
token_exchanges = Counter(
    "token_exchanges_total",
    "Number of upstream credential exchanges",
    ["outcome"]
)

token_cache_hits = Counter(
    "token_cache_hits_total",
    "Number of token requests served from cache"
)

density_queries = Counter(
    "density_queries_total",
    "Number of density snapshot/flow queries",
    ["mode", "outcome"]
)

alerts_emitted = Counter(
    "alerts_emitted_total",
    "Number of alert events produced by rule evaluation",
    ["level"]
)

webhook_deliveries = Counter(
    "webhook_deliveries_total",
    "Webhook delivery attempts",
    ["outcome"]
)

rule_evaluation_errors = Counter(
    "rule_evaluation_errors_total",
    "Number of rule evaluations that failed"
)

route_plans = Counter(
    "route_plans_total",
    "Number of route plans produced",
    ["mode"]
)

# 히스토그램 메트릭
evaluation_cycle_seconds = Histogram(
    "evaluation_cycle_duration_seconds",
    "Time spent evaluating all active rules in one cycle",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

route_plan_seconds = Histogram(
    "route_plan_duration_seconds",
    "Time spent planning and scoring a route",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# 게이지 메트릭
active_rules = Gauge(
    "geofence_active_rules",
    "Current number of active geofence rules"
)

alert_subscribers = Gauge(
    "alert_subscribers",
    "Current number of live alert subscribers"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
