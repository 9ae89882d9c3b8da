"""
Webhook sender for CrowdSafe.

Delivery policy is fire-and-forget with logged failure: one POST attempt,
failures are wrapped as WebhookDeliveryError, logged, counted and
discarded. ``deliver`` never raises and never retries.
"""

import asyncio
import aiohttp
from typing import Optional
from crowdsafe.core.errors import WebhookDeliveryError
from crowdsafe.core.models import AlertEvent
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.webhook")

class WebhookSender:
    """경보 웹훅 발송기"""

    def __init__(self, *, timeout: float = 5, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None
        self.last_error: Optional[WebhookDeliveryError] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()

    async def _post(self, url: str, event: AlertEvent) -> None:
        try:
            async with self._get_session().post(
                url,
                json=event.model_dump(mode="json", by_alias=True),
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status >= 400:
                    raise WebhookDeliveryError(f"웹훅 응답 오류 status:{resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise WebhookDeliveryError(f"웹훅 요청 실패: {e!r}") from e

    async def deliver(self, url: str, event: AlertEvent) -> bool:
        """
        이벤트를 웹훅으로 발송합니다.

        Returns:
            발송 성공 여부 (실패는 로그로만 남김)
        """
        try:
            await self._post(url, event)
        except WebhookDeliveryError as e:
            self.last_error = e
            metrics.webhook_deliveries.labels(outcome="failure").inc()
            log.warning(f"웹훅 발송 실패 rule:{event.rule_id} url:{url} error:{e}")
            return False

        metrics.webhook_deliveries.labels(outcome="success").inc()
        log.info(f"웹훅 발송 성공 rule:{event.rule_id} level:{event.level}")
        return True
