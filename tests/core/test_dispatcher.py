# tests/core/test_dispatcher.py
import pytest
from dependency_injector import providers

from orderflow.core.domain.events import EventName
from orderflow.core.domain.models import DecisionEmailStatus, OrderStatus
from orderflow.core.ports.mailer import MISSING_RECIPIENT, RELAY_UNAVAILABLE, SendResult
from orderflow.core.use_cases.dispatch_decision_emails import DispatchOutcome


@pytest.fixture
def claimed(order_factory):
    def _claimed(attempts: int = 1, status: OrderStatus = OrderStatus.VERIFIED):
        return order_factory(status=status, email_status=DecisionEmailStatus.SENDING, attempts=attempts)
    return _claimed


@pytest.mark.asyncio
class TestDecisionEmailDispatcher:

    async def test_send_success(self, container, mock_order_repo, mock_mailer, mock_publisher, claimed, order_factory):
        """
        Scenario: A queued email is claimed and the relay accepts it.
        Expected: sending -> sent, and the change is announced.
        """
        # Arrange
        mock_order_repo.claim_decision_email.return_value = claimed()
        mock_order_repo.record_email_sent.return_value = order_factory(
            status=OrderStatus.VERIFIED, email_status=DecisionEmailStatus.SENT, attempts=1
        )
        dispatcher = container.dispatcher()

        # Act
        outcome = await dispatcher.dispatch_order("order1")

        # Assert
        assert outcome == DispatchOutcome.SENT
        mock_mailer.send_decision.assert_awaited_once()
        mock_order_repo.record_email_sent.assert_awaited_once()
        mock_order_repo.record_email_failure.assert_not_awaited()
        names = [c.args[0].name for c in mock_publisher.to_customers.call_args_list]
        assert EventName.ORDERS_CHANGED.value in names

    async def test_not_claimed_sends_nothing(self, container, mock_order_repo, mock_mailer):
        """
        Scenario: Another dispatcher holds the claim (or the email was already sent).
        Expected: The mailer is never called.
        """
        mock_order_repo.claim_decision_email.return_value = None
        dispatcher = container.dispatcher()

        outcome = await dispatcher.dispatch_order("order1")

        assert outcome == DispatchOutcome.NOT_CLAIMED
        mock_mailer.send_decision.assert_not_awaited()

    async def test_transient_failure_requeues(self, container, mock_order_repo, mock_mailer, claimed):
        """
        Scenario: The SMTP relay times out on the first attempt.
        Expected: The email goes back to queued for the next sweep.
        """
        # Arrange
        mock_order_repo.claim_decision_email.return_value = claimed(attempts=1)
        mock_mailer.send_decision.side_effect = TimeoutError("smtp timed out")
        dispatcher = container.dispatcher()

        # Act
        outcome = await dispatcher.dispatch_order("order1")

        # Assert
        assert outcome == DispatchOutcome.REQUEUED
        kwargs = mock_order_repo.record_email_failure.call_args.kwargs
        assert kwargs["terminal"] is False
        assert mock_order_repo.record_email_failure.call_args.args[1] == "smtp timed out"

    async def test_repeated_failures_stay_queued(self, container, mock_order_repo, mock_mailer, claimed):
        """
        Scenario: The relay has already refused this email many times.
        Expected: It is still requeued; only a missing recipient is terminal.
        """
        mock_order_repo.claim_decision_email.return_value = claimed(attempts=25)
        mock_mailer.send_decision.side_effect = ConnectionRefusedError("relay down")
        dispatcher = container.dispatcher()

        outcome = await dispatcher.dispatch_order("order1")

        assert outcome == DispatchOutcome.REQUEUED
        assert mock_order_repo.record_email_failure.call_args.kwargs["terminal"] is False

    async def test_relay_unavailable_refunds_attempt(self, container, mock_order_repo, mock_mailer, claimed):
        """
        Scenario: The relay circuit is open when the email is claimed.
        Expected: The claim is released back to queued without a recorded failure.
        """
        # Arrange
        mock_order_repo.claim_decision_email.return_value = claimed(attempts=2)
        mock_mailer.send_decision.return_value = SendResult.skip(RELAY_UNAVAILABLE)
        dispatcher = container.dispatcher()

        # Act
        outcome = await dispatcher.dispatch_order("order1")

        # Assert
        assert outcome == DispatchOutcome.DEFERRED
        mock_order_repo.release_email_claim.assert_awaited_once()
        assert mock_order_repo.release_email_claim.call_args.args[:2] == ("order1", RELAY_UNAVAILABLE)
        mock_order_repo.record_email_failure.assert_not_awaited()

    async def test_sweep_stops_when_relay_unavailable(self, container, mock_order_repo, mock_mailer, claimed):
        """
        Scenario: The sweep finds three emails while the relay circuit is open.
        Expected: The first is deferred and the rest are left untouched.
        """
        mock_order_repo.list_email_candidates.return_value = ["o1", "o2", "o3"]
        mock_order_repo.claim_decision_email.return_value = claimed()
        mock_mailer.send_decision.return_value = SendResult.skip(RELAY_UNAVAILABLE)
        dispatcher = container.dispatcher()

        report = await dispatcher.run_once()

        assert report.candidates == 3
        assert report.outcomes == {"deferred": 1}
        assert mock_order_repo.claim_decision_email.await_count == 1

    async def test_missing_recipient_is_terminal(self, container, mock_order_repo, mock_mailer, claimed):
        """
        Scenario: The order has no email address.
        Expected: Failed at once with MISSING_RECIPIENT, no retries.
        """
        mock_order_repo.claim_decision_email.return_value = claimed(attempts=1)
        mock_mailer.send_decision.return_value = SendResult.skip(MISSING_RECIPIENT)
        dispatcher = container.dispatcher()

        outcome = await dispatcher.dispatch_order("order1")

        assert outcome == DispatchOutcome.FAILED
        args = mock_order_repo.record_email_failure.call_args
        assert args.args[1] == MISSING_RECIPIENT
        assert args.kwargs["terminal"] is True

    async def test_sweep_processes_candidates(self, container, mock_order_repo, mock_mailer, clock, claimed):
        """
        Scenario: The periodic sweep finds two queued emails.
        Expected: Both are claimed; stale `sending` claims use the reclaim cutoff.
        """
        # Arrange
        mock_order_repo.list_email_candidates.return_value = ["o1", "o2"]
        mock_order_repo.claim_decision_email.side_effect = [claimed(), None]
        dispatcher = container.dispatcher()

        # Act
        report = await dispatcher.run_once()

        # Assert
        assert report.candidates == 2
        assert report.outcomes == {"sent": 1, "not_claimed": 1}
        limit, reclaim_before = mock_order_repo.list_email_candidates.call_args.args
        assert limit == 10
        assert (clock.now() - reclaim_before).total_seconds() == 600

    async def test_disabled_mail_touches_nothing(self, container, mock_order_repo, mock_mailer):
        """
        Scenario: MAIL_ENABLED is false.
        Expected: The sweep and single dispatch return at once, no state change.
        """
        # Arrange
        container.mail_enabled.override(providers.Object(False))
        dispatcher = container.dispatcher()

        # Act
        report = await dispatcher.run_once()
        outcome = await dispatcher.dispatch_order("order1")

        # Assert
        assert report.candidates == 0
        assert outcome == DispatchOutcome.DISABLED
        mock_order_repo.list_email_candidates.assert_not_awaited()
        mock_order_repo.claim_decision_email.assert_not_awaited()
        mock_mailer.send_decision.assert_not_awaited()
