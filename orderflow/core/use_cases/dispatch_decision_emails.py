# orderflow/core/use_cases/dispatch_decision_emails.py
from datetime import timedelta
from enum import Enum
from typing import Dict

import structlog
from pydantic import BaseModel, Field

from orderflow.core.domain import events
from orderflow.core.domain.events import OrdersChangedAction
from orderflow.core.ports.clock import IClock
from orderflow.core.ports.event_publisher import IEventPublisher
from orderflow.core.ports.mailer import MISSING_RECIPIENT, RELAY_UNAVAILABLE, IMailer
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class DispatchOutcome(str, Enum):
    DISABLED = "disabled"         # Mail is switched off; nothing was touched
    NOT_CLAIMED = "not_claimed"   # Another worker holds it, or nothing to send
    SENT = "sent"
    REQUEUED = "requeued"         # Transient failure, the sweep will retry
    DEFERRED = "deferred"         # Relay unavailable; requeued, attempt not charged
    FAILED = "failed"             # Terminal: no recipient address


class DispatchReport(BaseModel):
    candidates: int = 0
    outcomes: Dict[str, int] = Field(default_factory=dict)

    def count(self, outcome: DispatchOutcome) -> None:
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1


class DecisionEmailDispatcher:
    """
    Use Case: Delivers the decision notification for Verified/Rejected orders.

    Each attempt starts with an atomic claim (-> sending, attempts + 1), so
    concurrent dispatchers for the same order never both send. The outcome is
    written back conditionally on `sending`:
    - sent: terminal success.
    - skipped for a missing recipient: terminal failure.
    - relay unavailable (open circuit): back to queued, the attempt refunded.
    - any other error: back to queued; the next sweep retries it.

    Only a missing recipient is terminal, so a relay outage of any length
    delays mail but never strands it. `attempts` counts deliveries that
    actually reached the relay.

    `run_once` is the periodic sweep. Claims left in `sending` longer than
    `reclaim_after` (a crashed worker) are picked up again. When mail is
    disabled the dispatcher returns immediately and mutates nothing.
    """

    def __init__(
        self,
        repo: IOrderRepository,
        mailer: IMailer,
        publisher: IEventPublisher,
        clock: IClock,
        enabled: bool,
        batch_size: int = 10,
        reclaim_after_sec: float = 600,
    ):
        self.repo = repo
        self.mailer = mailer
        self.publisher = publisher
        self.clock = clock
        self.enabled = enabled
        self.batch_size = batch_size
        self.reclaim_after = timedelta(seconds=reclaim_after_sec)

    async def run_once(self) -> DispatchReport:
        report = DispatchReport()
        if not self.enabled:
            return report

        with tracer.start_as_current_span("use_case.dispatch_decision_emails") as span:
            candidates = await self.repo.list_email_candidates(
                self.batch_size, self.clock.now() - self.reclaim_after
            )
            report.candidates = len(candidates)
            span.set_attribute("dispatch.candidates", len(candidates))

            for order_id in candidates:
                outcome = await self.dispatch_order(order_id)
                report.count(outcome)
                if outcome == DispatchOutcome.DEFERRED:
                    # The rest of the batch would be rejected the same way.
                    break

            if candidates:
                logger.info("decision_email_sweep_done", candidates=len(candidates), outcomes=report.outcomes)
            return report

    async def dispatch_order(self, order_id: str) -> DispatchOutcome:
        if not self.enabled:
            return DispatchOutcome.DISABLED

        now = self.clock.now()
        order = await self.repo.claim_decision_email(order_id, now, now - self.reclaim_after)
        if order is None:
            return DispatchOutcome.NOT_CLAIMED

        log = logger.bind(order_id=order_id, attempt=order.decision_email.attempts, decision=order.decision_email.type)

        try:
            result = await self.mailer.send_decision(order)
        except Exception as e:
            error = str(e) or type(e).__name__
            await self.repo.record_email_failure(order_id, error, terminal=False, now=self.clock.now())
            log.warning("decision_email_requeued", error=error)
            return DispatchOutcome.REQUEUED

        if result.ok:
            sent = await self.repo.record_email_sent(order_id, self.clock.now())
            if sent is None:
                # The claim went stale and was reclaimed mid-send.
                log.warning("decision_email_sent_claim_lost")
                return DispatchOutcome.SENT
            log.info("decision_email_sent")
            await self.publisher.to_operators(events.order_updated(sent))
            await self.publisher.to_customers(
                events.orders_changed(sent, OrdersChangedAction.DECISION_EMAIL_SENT, self.clock.now())
            )
            return DispatchOutcome.SENT

        reason = result.reason or "SKIPPED"
        if reason == RELAY_UNAVAILABLE:
            await self.repo.release_email_claim(order_id, reason, self.clock.now())
            log.info("decision_email_deferred", reason=reason)
            return DispatchOutcome.DEFERRED

        terminal = reason == MISSING_RECIPIENT
        await self.repo.record_email_failure(order_id, reason, terminal=terminal, now=self.clock.now())
        if terminal:
            log.error("decision_email_failed", reason=reason)
            return DispatchOutcome.FAILED
        log.warning("decision_email_requeued", reason=reason)
        return DispatchOutcome.REQUEUED
