"""
웹훅 발송기 단위 테스트

이 모듈은 발송 결과, 메트릭, 실패 로그를 테스트합니다.
"""

import aiohttp
import pytest
from loguru import logger
from prometheus_client import REGISTRY
from crowdsafe.adapters.webhook.sender import WebhookSender
from crowdsafe.core.errors import WebhookDeliveryError
from crowdsafe.core.models import AlertEvent

URL = "https://hooks.example.org/crowd"


def delivery_count(outcome):
    return REGISTRY.get_sample_value("webhook_deliveries_total", {"outcome": outcome}) or 0


@pytest.fixture
def event():
    return AlertEvent(
        rule_id="rule-1",
        triggered_at="2025-03-14T12:00:00Z",
        total_devices=120,
        level="warning",
        message="High density detected. Monitor and prepare resources."
    )


@pytest.fixture
def captured_logs():
    messages = []
    sink_id = logger.add(lambda m: messages.append(str(m)), level="WARNING")
    yield messages
    logger.remove(sink_id)


class TestDeliver:
    """웹훅 발송 테스트"""

    async def test_success(self, session_factory, event):
        session = session_factory("post", status=204)
        sender = WebhookSender(session=session)
        before = delivery_count("success")

        assert await sender.deliver(URL, event) is True

        assert delivery_count("success") == before + 1
        args, kwargs = session.post.call_args
        assert args[0] == URL
        assert kwargs["json"]["ruleId"] == "rule-1"
        assert kwargs["json"]["totalDevices"] == 120

    async def test_error_status_logged_and_discarded(self, session_factory, event, captured_logs):
        sender = WebhookSender(session=session_factory("post", status=500))
        before = delivery_count("failure")

        assert await sender.deliver(URL, event) is False

        assert delivery_count("failure") == before + 1
        assert isinstance(sender.last_error, WebhookDeliveryError)
        assert any("웹훅 발송 실패" in m and "rule-1" in m for m in captured_logs)

    async def test_transport_error_not_retried(self, session_factory, event):
        session = session_factory("post", exc=aiohttp.ClientConnectionError("refused"))
        sender = WebhookSender(session=session)

        assert await sender.deliver(URL, event) is False
        assert session.post.call_count == 1
