"""
Alert delivery port interfaces.

This module defines the protocols for live alert subscribers
and outbound webhook delivery.
"""

from typing import Protocol
from crowdsafe.core.models import AlertEvent

class AlertSubscriber(Protocol):
    """실시간 경보 구독자 인터페이스"""

    async def deliver(self, event: AlertEvent) -> None:
        """경보 이벤트 하나를 전달받습니다."""
        ...

class WebhookPort(Protocol):
    """웹훅 발송 포트 인터페이스"""

    async def deliver(self, url: str, event: AlertEvent) -> bool:
        """
        이벤트를 웹훅으로 발송합니다. 예외를 던지지 않습니다.

        Returns:
            발송 성공 여부
        """
        ...
