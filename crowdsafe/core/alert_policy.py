"""
Alert policy functions for CrowdSafe.

This module contains pure functions for classifying a rule's observed
device count into an alert level and deciding webhook eligibility.
"""

from datetime import datetime
from typing import Optional
from .models import AlertEvent, AlertLevel, GeofenceRule, Number, utc_iso

# 임계값 대비 critical 배수
CRITICAL_RATIO = 1.5

ALERT_MESSAGES = {
    "critical": "Critical density exceeded. Immediate action recommended.",
    "warning": "High density detected. Monitor and prepare resources.",
    "info": "Density within normal range.",
}

# 레벨 순서 정의 (낮음 -> 높음)
LEVEL_ORDER = {
    "info": 0,
    "warning": 1,
    "critical": 2
}

def classify_level(total_devices: Number, threshold: Number) -> AlertLevel:
    """
    관측 디바이스 수를 경보 레벨로 분류합니다.

    Args:
        total_devices: 관측 디바이스 수
        threshold: 규칙 임계값

    Returns:
        critical (> threshold * 1.5), warning (> threshold), 그 외 info
    """
    if total_devices > threshold * CRITICAL_RATIO:
        return "critical"
    if total_devices > threshold:
        return "warning"
    return "info"

def build_alert_event(rule: GeofenceRule, total_devices: Number,
                      now: Optional[datetime] = None) -> AlertEvent:
    """규칙과 관측값으로 AlertEvent를 생성합니다."""
    level = classify_level(total_devices, rule.threshold_devices)
    return AlertEvent(
        rule_id=rule.id,
        triggered_at=utc_iso(now),
        total_devices=total_devices,
        level=level,
        message=ALERT_MESSAGES[level]
    )

def should_notify_webhook(rule: GeofenceRule, event: AlertEvent) -> bool:
    """
    웹훅 발송 대상인지 판단합니다.

    UI 구독자에게는 모든 레벨이 전달되지만 웹훅은 warning/critical만 발송합니다.
    """
    return (
        "webhook" in rule.alert_channels
        and bool(rule.webhook_url)
        and LEVEL_ORDER[event.level] >= LEVEL_ORDER["warning"]
    )
