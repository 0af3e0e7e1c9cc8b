# tests/adapters/test_smtp_mailer.py
from unittest.mock import MagicMock

import pytest

from orderflow.adapters.mail.smtp_mailer import SmtpMailer
from orderflow.adapters.mail.templates import render_decision
from orderflow.core.domain.models import OrderStatus
from orderflow.core.ports.mailer import MAIL_DISABLED, MISSING_RECIPIENT, RELAY_UNAVAILABLE
from orderflow.shared.resilience import CircuitBreaker, CircuitBreakerOpenError


def _mailer(enabled=True, breaker=None):
    return SmtpMailer(
        enabled=enabled,
        host="smtp.test",
        port=587,
        sender="portal@klu.ac.in",
        breaker=breaker,
    )


class TestDecisionTemplates:

    def test_rejection_mentions_reason(self, order_factory):
        order = order_factory(status=OrderStatus.REJECTED).model_copy(update={"rejection_reason": "amount mismatch"})

        rendered = render_decision(order)

        assert rendered.subject == "CB Food Portal - Payment Failed (Order order1)"
        assert "amount mismatch" in rendered.text
        assert "amount mismatch" in rendered.html
        assert "₹300.00" in rendered.text

    def test_verified_subject(self, order_factory):
        rendered = render_decision(order_factory(status=OrderStatus.VERIFIED))

        assert "Ticket Confirmed" in rendered.subject
        assert "confirmed" in rendered.text

    def test_html_is_escaped(self, order_factory):
        order = order_factory(status=OrderStatus.REJECTED).model_copy(update={"rejection_reason": "<b>bad</b>"})

        rendered = render_decision(order)

        assert "<b>bad</b>" not in rendered.html
        assert "&lt;b&gt;bad&lt;/b&gt;" in rendered.html


@pytest.mark.asyncio
class TestSmtpMailer:

    async def test_disabled_skips(self, order_factory):
        result = await _mailer(enabled=False).send_decision(order_factory(status=OrderStatus.VERIFIED))

        assert result.skipped
        assert result.reason == MAIL_DISABLED

    async def test_missing_recipient_skips(self, order_factory):
        mailer = _mailer()
        mailer._send_sync = MagicMock()

        result = await mailer.send_decision(order_factory(status=OrderStatus.VERIFIED, email="  "))

        assert result.reason == MISSING_RECIPIENT
        mailer._send_sync.assert_not_called()

    async def test_send_builds_message(self, order_factory):
        """
        Scenario: A verified order with a recipient.
        Expected: One multipart message goes to the team email.
        """
        # Arrange
        mailer = _mailer()
        mailer._send_sync = MagicMock()

        # Act
        result = await mailer.send_decision(order_factory(status=OrderStatus.VERIFIED))

        # Assert
        assert result.ok
        message = mailer._send_sync.call_args.args[0]
        assert message["To"] == "team.alpha@klu.ac.in"
        assert message["From"] == "portal@klu.ac.in"
        assert message.is_multipart()

    async def test_breaker_opens_after_failures(self, order_factory):
        """
        Scenario: The relay keeps refusing connections.
        Expected: Errors propagate, then the open breaker skips without calling SMTP.
        """
        # Arrange
        mailer = _mailer(breaker=CircuitBreaker("smtp", failure_threshold=2, recovery_timeout=60))
        mailer._send_sync = MagicMock(side_effect=ConnectionRefusedError("refused"))
        order = order_factory(status=OrderStatus.VERIFIED)

        # Act / Assert
        for _ in range(2):
            with pytest.raises(ConnectionRefusedError):
                await mailer.send_decision(order)
        result = await mailer.send_decision(order)

        assert result.skipped
        assert result.reason == RELAY_UNAVAILABLE
        assert mailer._send_sync.call_count == 2


def test_breaker_half_open_recovers():
    now = [0.0]
    breaker = CircuitBreaker("smtp", failure_threshold=1, recovery_timeout=10, clock=lambda: now[0])

    with pytest.raises(ValueError):
        breaker.call(MagicMock(side_effect=ValueError("down")))
    with pytest.raises(CircuitBreakerOpenError):
        breaker.call(lambda: "ok")

    now[0] = 11.0
    assert breaker.call(lambda: "ok") == "ok"
    assert breaker.failure_count == 0
