"""
Geofence alert feature for CrowdSafe.

This module provides the in-memory rule store, the live alert subscriber
registry and the engine that evaluates active rules against density
snapshots and fans the resulting events out to subscribers and webhooks.
"""

import asyncio
import inspect
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from crowdsafe.core.alert_policy import build_alert_event, should_notify_webhook
from crowdsafe.core.models import AlertEvent, GeofenceRule, GeofenceRuleSpec
from crowdsafe.features.density import DensityAggregator
from crowdsafe.ports.alerts import AlertSubscriber, WebhookPort
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.geofence")

class RuleStore:
    """지오펜스 규칙 저장소 (읽기 시 복사본 반환)"""

    def __init__(self):
        self._rules: Dict[str, GeofenceRule] = {}
        self._lock = threading.Lock()

    def add(self, spec: GeofenceRuleSpec) -> GeofenceRule:
        """새 id를 부여해 규칙을 저장합니다. 호출마다 새 규칙이 생성됩니다."""
        rule = GeofenceRule(id=str(uuid.uuid4()), **dict(spec))
        with self._lock:
            self._rules[rule.id] = rule
        return rule

    def get(self, rule_id: str) -> Optional[GeofenceRule]:
        with self._lock:
            return self._rules.get(rule_id)

    def list(self) -> List[GeofenceRule]:
        with self._lock:
            return [*self._rules.values()]

    def active(self) -> List[GeofenceRule]:
        return [r for r in self.list() if r.active]

    def delete(self, rule_id: str) -> bool:
        """규칙을 삭제합니다. 없는 id는 False를 반환할 뿐 오류가 아닙니다."""
        with self._lock:
            return self._rules.pop(rule_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

class CallbackSubscriber:
    """일반 콜백 (동기/비동기)을 AlertSubscriber로 감쌉니다."""

    def __init__(self, callback: Callable[[AlertEvent], Any]):
        self.callback = callback

    async def deliver(self, event: AlertEvent) -> None:
        result = self.callback(event)
        if inspect.isawaitable(result):
            await result

class QueueSubscriber:
    """이벤트를 asyncio 큐에 적재하는 구독자 (스트리밍 연결용)"""

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def deliver(self, event: AlertEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning(f"구독자 큐가 가득 참, 이벤트 드롭 rule:{event.rule_id}")

class Subscription:
    """
    구독 해제 핸들.

    호출하면 해당 구독자만 레지스트리에서 제거합니다. 여러 번 호출해도 안전합니다.
    """

    def __init__(self, registry: "SubscriberRegistry", subscriber_id: str):
        self.registry = registry
        self.subscriber_id = subscriber_id

    def __call__(self) -> None:
        self.registry.unsubscribe(self.subscriber_id)

class SubscriberRegistry:
    """id 기반 실시간 경보 구독자 레지스트리"""

    def __init__(self):
        self._subscribers: Dict[str, AlertSubscriber] = {}
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Union[AlertSubscriber, Callable[[AlertEvent], Any]]) -> Subscription:
        """
        구독자를 등록합니다.

        Args:
            subscriber: deliver(event)를 가진 객체 또는 콜백

        Returns:
            구독 해제 핸들
        """
        # 호출 가능한 객체는 deliver 속성 유무와 관계없이 콜백으로 취급
        if callable(subscriber):
            subscriber = CallbackSubscriber(subscriber)
        elif not hasattr(subscriber, "deliver"):
            raise TypeError("subscriber must implement deliver(event) or be callable")

        subscriber_id = uuid.uuid4().hex
        with self._lock:
            self._subscribers[subscriber_id] = subscriber
            count = len(self._subscribers)
        metrics.alert_subscribers.set(count)
        log.debug(f"구독자 등록 id:{subscriber_id} total:{count}")
        return Subscription(self, subscriber_id)

    def unsubscribe(self, subscriber_id: str) -> bool:
        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None) is not None
            count = len(self._subscribers)
        if removed:
            metrics.alert_subscribers.set(count)
            log.debug(f"구독자 해제 id:{subscriber_id} total:{count}")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    async def broadcast(self, event: AlertEvent) -> int:
        """
        등록 순서대로 모든 구독자에게 이벤트를 전달합니다.

        실패한 구독자는 로그만 남기고 건너뜁니다.

        Returns:
            전달에 성공한 구독자 수
        """
        with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        for subscriber_id, subscriber in targets:
            try:
                await subscriber.deliver(event)
                delivered += 1
            except Exception as e:
                log.warning(f"구독자 전달 실패 id:{subscriber_id} rule:{event.rule_id} error:{e!r}")
        return delivered

class GeofenceEngine:
    """지오펜스 규칙 저장, 평가, 경보 전파"""

    def __init__(self,
                 density: DensityAggregator,
                 *,
                 webhook: Optional[WebhookPort] = None,
                 store: Optional[RuleStore] = None,
                 registry: Optional[SubscriberRegistry] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        초기화합니다.

        Args:
            density: 밀도 집계기
            webhook: 웹훅 발송 포트 (없으면 웹훅 비활성)
            store: 규칙 저장소
            registry: 구독자 레지스트리
            clock: 경보 발생 시각 공급자
        """
        self.density = density
        self.webhook = webhook
        self.store = store if store is not None else RuleStore()
        self.registry = registry if registry is not None else SubscriberRegistry()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        log.info("GeofenceEngine 초기화됨")

    def add_rule(self, spec: Union[GeofenceRuleSpec, Dict[str, Any]]) -> GeofenceRule:
        """규칙을 추가하고 id가 부여된 규칙을 반환합니다."""
        if not isinstance(spec, GeofenceRuleSpec):
            spec = GeofenceRuleSpec.model_validate(spec)
        rule = self.store.add(spec)
        metrics.active_rules.set(len(self.store.active()))
        log.info(f"규칙 추가됨 id:{rule.id} name:{rule.name} threshold:{rule.threshold_devices} active:{rule.active}")
        return rule

    def list_rules(self) -> List[GeofenceRule]:
        return self.store.list()

    def active_rules(self) -> List[GeofenceRule]:
        return self.store.active()

    def get_rule(self, rule_id: str) -> Optional[GeofenceRule]:
        return self.store.get(rule_id)

    def delete_rule(self, rule_id: str) -> bool:
        """규칙을 삭제합니다. 없는 id도 성공으로 취급합니다."""
        removed = self.store.delete(rule_id)
        # 평가 시 rule id로 캐시된 영역도 함께 제거
        self.density.forget(rule_id)
        metrics.active_rules.set(len(self.store.active()))
        if removed:
            log.info(f"규칙 삭제됨 id:{rule_id}")
        else:
            log.debug(f"삭제할 규칙 없음 id:{rule_id}")
        return removed

    def subscribe(self, handler: Union[AlertSubscriber, Callable[[AlertEvent], Any]]) -> Subscription:
        return self.registry.subscribe(handler)

    async def evaluate_rule(self, rule: GeofenceRule) -> AlertEvent:
        """
        규칙 하나를 평가해 AlertEvent를 생성합니다.

        규칙 id를 영역 id로 사용해 밀도 스냅샷을 조회합니다.

        Raises:
            DataUnavailable: 밀도 조회 실패
        """
        snapshot = await self.density.snapshot(rule.id, rule.polygon)
        event = build_alert_event(rule, snapshot.total_devices, now=self.clock())
        metrics.alerts_emitted.labels(level=event.level).inc()
        return event

    async def run_cycle(self) -> List[AlertEvent]:
        """
        활성 규칙 전체를 한 번 평가합니다.

        규칙별로 실패를 격리하며, 이벤트는 규칙 순서대로 전달되고 반환됩니다.
        """
        rules = self.active_rules()
        metrics.active_rules.set(len(rules))
        events: List[AlertEvent] = []

        with metrics.evaluation_cycle_seconds.time():
            for rule in rules:
                try:
                    event = await self.evaluate_rule(rule)
                except Exception as e:
                    metrics.rule_evaluation_errors.inc()
                    log.error(f"규칙 평가 실패 id:{rule.id} name:{rule.name} error:{e!r}")
                    continue

                events.append(event)
                await self.registry.broadcast(event)

                if self.webhook is not None and should_notify_webhook(rule, event):
                    try:
                        await self.webhook.deliver(rule.webhook_url, event)
                    except Exception as e:
                        log.warning(f"웹훅 포트 오류 rule:{rule.id} url:{rule.webhook_url} error:{e!r}")

        log.info(f"평가 주기 완료 rules:{len(rules)} events:{len(events)}")
        return events
