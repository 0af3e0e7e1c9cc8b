# tests/adapters/test_sql_order_repository.py
import asyncio
from datetime import timedelta

import pytest

from orderflow.adapters.persistence.sql_order_repository import SqlOrderRepository
from orderflow.core.domain.exceptions import DuplicateTransactionError
from orderflow.core.domain.models import DecisionEmailStatus, OrderStatus, UploadStatus
from orderflow.core.domain.pagination import OrderCursor

from tests.conftest import T0


@pytest.fixture
def repo(database):
    return SqlOrderRepository(database)


@pytest.mark.asyncio
class TestTransactionUniqueness:

    async def test_concurrent_duplicates_one_wins(self, repo, order_factory):
        """
        Scenario: Ten submissions race with the same transaction id.
        Expected: Exactly one insert succeeds, every other one conflicts.
        """
        # Arrange
        orders = [order_factory(f"order{i}", transaction_id="RACE42") for i in range(10)]

        # Act
        results = await asyncio.gather(*(repo.create(o) for o in orders), return_exceptions=True)

        # Assert
        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, DuplicateTransactionError)]
        assert len(successes) == 1
        assert len(conflicts) == 9
        assert await repo.transaction_id_exists("race42")

    async def test_case_variant_conflicts(self, repo, order_factory):
        """
        Scenario: TXN1 is used, then resubmitted as txn1.
        Expected: The second insert conflicts.
        """
        await repo.create(order_factory("order1", transaction_id="TXN1"))

        with pytest.raises(DuplicateTransactionError) as excinfo:
            await repo.create(order_factory("order2", transaction_id="txn1"))

        assert "already been used" in str(excinfo.value)
        assert await repo.get("order2") is None

    async def test_roundtrip_preserves_snapshot(self, repo, order_factory):
        order = order_factory("order1")

        await repo.create(order)
        stored = await repo.get("order1")

        assert stored == order


@pytest.mark.asyncio
class TestStatusTransitions:

    async def test_concurrent_rejections_one_persists(self, repo, order_factory):
        """
        Scenario: Two operators reject the same order at once with different reasons.
        Expected: One update wins, one reason persists, one email is queued,
        and the email reaches `sent` exactly once.
        """
        # Arrange
        await repo.create(order_factory("order1"))
        now = T0 + timedelta(minutes=5)

        # Act
        first, second = await asyncio.gather(
            repo.apply_decision("order1", OrderStatus.REJECTED, "bad proof", now),
            repo.apply_decision("order1", OrderStatus.REJECTED, "wrong amount", now),
        )

        # Assert
        winners = [r for r in (first, second) if r is not None]
        assert len(winners) == 1
        stored = await repo.get("order1")
        assert stored.status == OrderStatus.REJECTED
        assert stored.rejection_reason == winners[0].rejection_reason
        assert stored.decision_email.status == DecisionEmailStatus.QUEUED
        assert stored.decision_email.type == "Rejected"

        claims = await asyncio.gather(
            repo.claim_decision_email("order1", now, now - timedelta(minutes=10)),
            repo.claim_decision_email("order1", now, now - timedelta(minutes=10)),
        )
        assert len([c for c in claims if c is not None]) == 1

        sent = await repo.record_email_sent("order1", now)
        assert sent.decision_email.status == DecisionEmailStatus.SENT
        assert sent.decision_email.attempts == 1
        assert await repo.record_email_sent("order1", now) is None
        assert await repo.claim_decision_email("order1", now, now - timedelta(minutes=10)) is None

    async def test_decision_on_decided_order_changes_nothing(self, repo, order_factory):
        await repo.create(order_factory("order1"))
        await repo.apply_decision("order1", OrderStatus.VERIFIED, "", T0)

        again = await repo.apply_decision("order1", OrderStatus.REJECTED, "late", T0 + timedelta(minutes=1))

        assert again is None
        stored = await repo.get("order1")
        assert stored.status == OrderStatus.VERIFIED
        assert stored.rejection_reason == ""

    async def test_delivery_keeps_email_state(self, repo, order_factory):
        await repo.create(order_factory("order1"))
        await repo.apply_decision("order1", OrderStatus.VERIFIED, "", T0)

        delivered = await repo.mark_delivered("order1", T0)

        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.decision_email.status == DecisionEmailStatus.QUEUED
        assert await repo.mark_delivered("order1", T0) is None

    async def test_placed_order_has_no_email_to_claim(self, repo, order_factory):
        await repo.create(order_factory("order1"))

        assert await repo.claim_decision_email("order1", T0, T0) is None
        assert await repo.list_email_candidates(10, T0) == []

    async def test_stale_sending_is_reclaimed(self, repo, order_factory):
        """
        Scenario: A worker claimed the email and died.
        Expected: The claim is listed and reclaimable only after the reclaim window.
        """
        await repo.create(order_factory("order1"))
        await repo.apply_decision("order1", OrderStatus.VERIFIED, "", T0)
        await repo.claim_decision_email("order1", T0, T0 - timedelta(minutes=10))

        fresh = T0 + timedelta(minutes=1)
        assert await repo.list_email_candidates(10, fresh - timedelta(minutes=10)) == []
        assert await repo.claim_decision_email("order1", fresh, fresh - timedelta(minutes=10)) is None

        later = T0 + timedelta(minutes=11)
        assert await repo.list_email_candidates(10, later - timedelta(minutes=10)) == ["order1"]
        reclaimed = await repo.claim_decision_email("order1", later, later - timedelta(minutes=10))
        assert reclaimed.decision_email.attempts == 2

    async def test_failure_requeues_or_fails(self, repo, order_factory):
        await repo.create(order_factory("order1"))
        await repo.apply_decision("order1", OrderStatus.VERIFIED, "", T0)
        await repo.claim_decision_email("order1", T0, T0)

        requeued = await repo.record_email_failure("order1", "timeout", terminal=False, now=T0)
        assert requeued.decision_email.status == DecisionEmailStatus.QUEUED
        assert requeued.decision_email.last_error == "timeout"

        await repo.claim_decision_email("order1", T0, T0)
        failed = await repo.record_email_failure("order1", "MISSING_RECIPIENT", terminal=True, now=T0)
        assert failed.decision_email.status == DecisionEmailStatus.FAILED
        assert await repo.list_email_candidates(10, T0) == []

    async def test_released_claim_refunds_attempt(self, repo, order_factory):
        """
        Scenario: A claimed email is handed back because the relay is unavailable.
        Expected: Queued again with the attempt count it had before the claim.
        """
        await repo.create(order_factory("order1"))
        await repo.apply_decision("order1", OrderStatus.VERIFIED, "", T0)
        claimed = await repo.claim_decision_email("order1", T0, T0)
        assert claimed.decision_email.attempts == 1

        released = await repo.release_email_claim("order1", "RELAY_UNAVAILABLE", T0)

        assert released.decision_email.status == DecisionEmailStatus.QUEUED
        assert released.decision_email.attempts == 0
        assert released.decision_email.last_error == "RELAY_UNAVAILABLE"
        assert await repo.list_email_candidates(10, T0) == ["order1"]
        assert await repo.release_email_claim("order1", "RELAY_UNAVAILABLE", T0) is None


@pytest.mark.asyncio
class TestPaymentUpload:

    async def test_upload_outcome_recorded_once(self, repo, order_factory):
        """
        Scenario: The upload completes, then a late failure report arrives.
        Expected: Only the first outcome is recorded.
        """
        await repo.create(order_factory("order1"))

        done = await repo.complete_upload("order1", "https://cdn.test/a.png", "a.png", T0)
        late = await repo.fail_upload("order1", "boom", T0)

        assert done.payment.upload_status == UploadStatus.UPLOADED
        assert done.payment.screenshot_url == "https://cdn.test/a.png"
        assert late is None

    async def test_restart_only_after_failure(self, repo, order_factory):
        await repo.create(order_factory("order1"))
        owner = "team.alpha@klu.ac.in"

        assert await repo.restart_upload("order1", owner, "new.png", T0) is None
        await repo.fail_upload("order1", "boom", T0)
        assert await repo.restart_upload("order1", "intruder@klu.ac.in", "new.png", T0) is None

        restarted = await repo.restart_upload("order1", owner, "new.png", T0)
        assert restarted.payment.upload_status == UploadStatus.PENDING
        assert restarted.payment.upload_error == ""

    async def test_fail_stale_uploads(self, repo, order_factory):
        await repo.create(order_factory("old", transaction_id="OLD1", created_at=T0))
        await repo.create(order_factory("new", transaction_id="NEW1", created_at=T0 + timedelta(minutes=20)))

        failed = await repo.fail_stale_uploads(T0 + timedelta(minutes=15), "Upload interrupted before completion", T0)

        assert [o.id for o in failed] == ["old"]
        assert failed[0].payment.upload_error == "Upload interrupted before completion"
        assert (await repo.get("new")).payment.upload_status == UploadStatus.PENDING


@pytest.mark.asyncio
class TestKeysetPagination:

    async def test_pages_cover_everything_once_with_concurrent_inserts(self, repo, order_factory):
        """
        Scenario: A client pages through orders while new ones are created.
        Expected: Every pre-existing order appears exactly once, newest first,
        including orders sharing a timestamp.
        """
        # Arrange: two orders share a timestamp
        stamps = [T0, T0 + timedelta(seconds=1), T0 + timedelta(seconds=1), T0 + timedelta(seconds=2), T0 + timedelta(seconds=3)]
        for i, stamp in enumerate(stamps):
            await repo.create(order_factory(f"order{i}", transaction_id=f"TX{i}", created_at=stamp))

        # Act
        seen = []
        cursor = None
        inserted = False
        while True:
            page = await repo.list_page(2, cursor)
            seen.extend(o.id for o in page)
            if not inserted:
                await repo.create(order_factory("late", transaction_id="LATE", created_at=T0 + timedelta(minutes=1)))
                inserted = True
            if len(page) < 2:
                break
            cursor = OrderCursor.parse(OrderCursor(page[-1].created_at, page[-1].id).encode())

        # Assert
        assert seen == ["order4", "order3", "order2", "order1", "order0"]

    async def test_account_filter(self, repo, order_factory):
        await repo.create(order_factory("mine", transaction_id="A1"))
        await repo.create(order_factory("theirs", transaction_id="B1", account_key="other@klu.ac.in"))

        page = await repo.list_page(10, None, "other@klu.ac.in")

        assert [o.id for o in page] == ["theirs"]

    async def test_list_by_status(self, repo, order_factory):
        await repo.create(order_factory("a", transaction_id="A1"))
        await repo.create(order_factory("b", transaction_id="B1"))
        await repo.apply_decision("b", OrderStatus.REJECTED, "bad proof", T0)

        popular = await repo.list_by_status([OrderStatus.PLACED, OrderStatus.VERIFIED, OrderStatus.DELIVERED])

        assert [o.id for o in popular] == ["a"]
