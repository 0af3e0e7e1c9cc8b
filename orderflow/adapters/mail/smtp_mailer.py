# orderflow/adapters/mail/smtp_mailer.py
import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

import structlog

from orderflow.adapters.mail.templates import render_decision
from orderflow.core.domain.models import Order
from orderflow.core.ports.mailer import MAIL_DISABLED, MISSING_RECIPIENT, RELAY_UNAVAILABLE, IMailer, SendResult
from orderflow.shared.resilience import CircuitBreaker, CircuitBreakerOpenError
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class SmtpMailer(IMailer):
    """
    Sends decision notifications through an SMTP relay.

    smtplib is blocking, so each send runs in the thread pool with a socket
    timeout. A CircuitBreaker stops hammering the relay while it is down;
    while it is open the send is skipped with RELAY_UNAVAILABLE, which the
    dispatcher requeues without charging an attempt.
    """

    def __init__(
        self,
        enabled: bool,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        starttls: bool = True,
        timeout_sec: int = 20,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.enabled = enabled
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.starttls = starttls
        self.timeout_sec = timeout_sec
        self.breaker = breaker or CircuitBreaker("smtp", failure_threshold=5, recovery_timeout=60)

    async def send_decision(self, order: Order) -> SendResult:
        if not self.enabled:
            return SendResult.skip(MAIL_DISABLED)

        recipient = (order.team.email or "").strip()
        if not recipient:
            return SendResult.skip(MISSING_RECIPIENT)

        message = self._build_message(order, recipient)

        with tracer.start_as_current_span("smtp_send") as span:
            span.set_attribute("order.id", order.id)
            span.set_attribute("mail.type", order.decision_email.type)
            try:
                await self.breaker.a_call(asyncio.to_thread, self._send_sync, message)
            except CircuitBreakerOpenError:
                span.set_attribute("mail.relay_unavailable", True)
                return SendResult.skip(RELAY_UNAVAILABLE)

        logger.info("decision_email_delivered", order_id=order.id, decision=order.decision_email.type)
        return SendResult.sent()

    def _build_message(self, order: Order, recipient: str) -> EmailMessage:
        rendered = render_decision(order)
        message = EmailMessage()
        message["Subject"] = rendered.subject
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(rendered.text)
        message.add_alternative(rendered.html, subtype="html")
        return message

    # --- Synchronous Helpers (executed in thread pool) ---

    def _send_sync(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_ssl:
            client = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_sec, context=context)
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout_sec)

        with client:
            if not self.use_ssl and self.starttls:
                client.starttls(context=context)
            if self.username and self.password:
                client.login(self.username, self.password)
            client.send_message(message)
