"""Tests for the draft state machine and the submission lifecycle."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from streampay.engine.models.draft import Phase, SubmissionStatus
from streampay.engine.services.balances import TokenAmount
from streampay.engine.state_machine import StreamDraftStateMachine
from streampay.engine.validation import RejectionReason
from streampay.errors.chain_errors import DiscoveryError, RPCError, TransactionRevertedError
from streampay.notifications.events import DraftEvent

ACCOUNT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
SPENDER = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
START = datetime(2024, 1, 2, 9, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fill(machine: StreamDraftStateMachine, payment: str = "70") -> None:
    """Weekly stream over two weeks."""
    machine.set_interval("week")
    machine.set_payment(payment)
    machine.set_start_time(START)
    machine.set_stop_time(START + timedelta(days=14))
    machine.set_recipient(RECIPIENT)


def _fund(book, *, balance: int = 1000 * 10**18, allowance: int = 10**30, decimals: int = 18) -> None:
    book.set_balance(DAI, ACCOUNT, TokenAmount(decimals=decimals, value=balance))
    book.set_allowance(SPENDER, DAI, ACCOUNT, TokenAmount(decimals=decimals, value=allowance))


# ---------------------------------------------------------------------------
# Field edits
# ---------------------------------------------------------------------------


class TestFieldEdits:
    def test_initial_state(self, machine) -> None:
        assert machine.phase is Phase.IDLE
        assert machine.draft.token_symbol == "DAI"
        assert machine.draft.token_address == DAI
        assert machine.draft.start_time == datetime(2024, 1, 1, 13, 1, tzinfo=UTC)
        assert machine.submittable is False

    def test_weekly_scenario(self, machine) -> None:
        _fill(machine)
        assert machine.draft.duration == 20160
        assert machine.draft.deposit == Decimal(140)
        assert machine.submittable is True

    def test_payment_label_parsed(self, machine) -> None:
        machine.set_payment("12.5 DAI")
        assert machine.draft.payment == Decimal("12.5")
        assert machine.draft.payment_label == "12.5 DAI"

    def test_unparseable_payment(self, machine) -> None:
        machine.set_payment("abc")
        assert machine.draft.payment is None
        assert machine.draft.payment_label == "abc"

    def test_select_unknown_token(self, machine) -> None:
        machine.select_token("0x0000000000000000000000000000000000000001")
        assert machine.draft.token_symbol == ""
        assert machine.report.errors["token"].reason is RejectionReason.TOKEN_NOT_ACCEPTED

    def test_edit_keeps_phase(self, machine) -> None:
        machine.set_recipient(ACCOUNT)
        assert machine.phase is Phase.IDLE
        assert machine.report.errors["recipient"].reason is RejectionReason.RECIPIENT_IS_SELF

    def test_account_change_revalidates_recipient(self, machine) -> None:
        machine.set_recipient(RECIPIENT)
        assert machine.report.errors["recipient"] is None
        machine.set_account(RECIPIENT)
        assert machine.account == RECIPIENT
        assert machine.report.errors["recipient"].reason is RejectionReason.RECIPIENT_IS_SELF

    def test_balance_arrival_revalidates(self, machine, balance_book) -> None:
        _fill(machine)
        assert machine.report.errors["payment"] is None
        balance_book.set_balance(DAI, ACCOUNT, TokenAmount(decimals=18, value=100 * 10**18))
        rejection = machine.report.errors["payment"]
        assert rejection.reason is RejectionReason.PAYMENT_INSUFFICIENT_BALANCE
        assert rejection.detail["balance"] == Decimal("100.00")

    def test_snapshot(self, machine) -> None:
        _fill(machine)
        snap = machine.snapshot()
        assert snap.draft is machine.draft
        assert snap.phase is Phase.IDLE
        assert snap.duration_label == "14 days"
        assert snap.submittable is True


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmitGates:
    async def test_invalid_draft_is_not_submitted(self, machine, fake_chain) -> None:
        phase = await machine.submit()
        assert phase is Phase.IDLE
        assert fake_chain.sent == []
        assert machine.draft.submitted is True
        errors = machine.report.errors
        assert errors["payment"].reason is RejectionReason.REQUIRED_FIELD_MISSING
        assert errors["interval"].reason is RejectionReason.INTERVAL_INVALID
        assert errors["times"].reason is RejectionReason.REQUIRED_FIELD_MISSING
        assert errors["recipient"].reason is RejectionReason.RECIPIENT_INVALID

    async def test_needs_approval(self, machine, balance_book, fake_chain) -> None:
        _fill(machine, payment="100")
        _fund(balance_book, balance=1000, allowance=50, decimals=0)
        assert machine.draft.deposit == Decimal(200)
        phase = await machine.submit()
        assert phase is Phase.AWAITING_APPROVAL
        assert fake_chain.sent == []

    async def test_unknown_allowance_needs_approval(self, machine, balance_book) -> None:
        _fill(machine)
        balance_book.set_balance(DAI, ACCOUNT, TokenAmount(decimals=18, value=10**21))
        assert await machine.submit() is Phase.AWAITING_APPROVAL

    async def test_resolve_approval_allows_submit(self, machine, balance_book, fake_chain) -> None:
        _fill(machine, payment="100")
        _fund(balance_book, balance=1000, allowance=50, decimals=0)
        await machine.submit()
        balance_book.set_allowance(SPENDER, DAI, ACCOUNT, TokenAmount(decimals=0, value=10**6))
        machine.resolve_approval()
        assert machine.phase is Phase.IDLE
        assert await machine.submit() is Phase.PENDING
        await machine.close()

    async def test_unknown_balance_fails(self, machine, balance_book) -> None:
        _fill(machine)
        balance_book.set_allowance(SPENDER, DAI, ACCOUNT, TokenAmount(decimals=18, value=10**30))
        assert await machine.submit() is Phase.FAILED
        assert machine.draft.submission_error == "token balance is not known yet"


class TestSubmitLifecycle:
    async def test_builds_create_stream_call(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        phase = await machine.submit()
        assert phase is Phase.PENDING
        assert machine.tx_hash == "0xabc"
        assert machine.draft.submission_status is SubmissionStatus.PENDING

        params, gas_price = fake_chain.sent[0]
        # 20h59m30s after the reference block at 14s per block
        assert params.start_block == 6398
        assert params.stop_block == 6398 + 2 * 43200
        assert params.interval_in_blocks == 43200
        assert params.payment == 70 * 10**18
        assert params.deposit == 140 * 10**18
        assert params.to_call_args() == (ACCOUNT, RECIPIENT, DAI, 6398, 92798, 70 * 10**18, 43200)
        assert gas_price == 21_000_000_000
        await machine.close()

    async def test_gas_price_fallback(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        fake_chain.gas_error = RPCError("node down")
        assert await machine.submit() is Phase.PENDING
        assert fake_chain.sent[0][1] == 8_000_000_000
        await machine.close()

    async def test_discovery_settles_and_navigates(
        self, machine, balance_book, fake_chain, fake_navigator
    ) -> None:
        _fill(machine)
        _fund(balance_book)
        await machine.submit()
        await machine.wait_idle()

        sub = fake_chain.subscriptions[0]
        assert sub.block_number == 1000
        assert sub.sender == ACCOUNT.lower()

        sub.on_stream("42")
        await machine.wait_idle()
        assert machine.phase is Phase.SETTLED
        assert machine.stream_id == "42"
        assert sub.cancelled is True
        assert fake_navigator.opened == ["42"]
        # fresh draft after settlement
        assert machine.draft.payment is None
        assert machine.draft.token_address == DAI

    async def test_second_submit_while_pending_is_noop(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        await machine.submit()
        assert await machine.submit() is Phase.PENDING
        assert len(fake_chain.sent) == 1
        await machine.close()

    async def test_second_submit_while_submitting_is_noop(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        fake_chain.send_gate = asyncio.Event()
        first = asyncio.create_task(machine.submit())
        for _ in range(5):
            await asyncio.sleep(0)
        assert machine.phase is Phase.SUBMITTING

        assert await machine.submit() is Phase.SUBMITTING
        fake_chain.send_gate.set()
        assert await first is Phase.PENDING
        assert len(fake_chain.sent) == 1
        await machine.close()

    async def test_receipt_timeout_fails(
        self, token_directory, balance_book, fake_chain, fake_navigator, clock
    ) -> None:
        machine = StreamDraftStateMachine(
            tokens=token_directory,
            book=balance_book,
            chain=fake_chain,
            gas=fake_chain,
            submitter=fake_chain,
            discovery=fake_chain,
            navigator=fake_navigator,
            account=ACCOUNT,
            spender=SPENDER,
            clock=clock,
            receipt_timeout=0.01,
        )
        machine.reconcile()
        _fill(machine)
        _fund(balance_book)
        fake_chain.receipt_gate = asyncio.Event()

        assert await machine.submit() is Phase.PENDING
        await machine.wait_idle()
        assert machine.phase is Phase.FAILED
        assert machine.draft.submission_error == "no receipt for 0xabc after 0.01s"
        assert fake_chain.subscriptions == []

        # the draft is kept, so the user can retry
        fake_chain.receipt_gate = None
        assert await machine.submit() is Phase.PENDING
        await machine.close()

    async def test_send_failure(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        fake_chain.send_error = RPCError("user rejected transaction")
        assert await machine.submit() is Phase.FAILED
        assert machine.draft.submission_error == "user rejected transaction"
        assert machine.draft.submission_status is SubmissionStatus.ERROR

    async def test_retry_after_failure(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        fake_chain.send_error = RPCError("network failure")
        await machine.submit()
        fake_chain.send_error = None
        assert await machine.submit() is Phase.PENDING
        assert machine.draft.submission_error == ""
        await machine.close()

    async def test_revert_fails(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        fake_chain.receipt_error = TransactionRevertedError("0xabc")
        await machine.submit()
        await machine.wait_idle()
        assert machine.phase is Phase.FAILED
        assert "reverted" in machine.draft.submission_error
        assert fake_chain.subscriptions == []

    async def test_discovery_error_fails(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        await machine.submit()
        await machine.wait_idle()
        fake_chain.subscriptions[0].on_error(DiscoveryError("stream discovery timed out", status_code=504))
        assert machine.phase is Phase.FAILED
        assert machine.draft.submission_error == "stream discovery timed out"

    async def test_navigation_failure_is_logged(
        self, machine, balance_book, fake_chain, fake_navigator, caplog
    ) -> None:
        async def broken(stream_id: str) -> None:
            raise RuntimeError("no router")

        fake_navigator.open_stream = broken
        _fill(machine)
        _fund(balance_book)
        await machine.submit()
        await machine.wait_idle()
        fake_chain.subscriptions[0].on_stream("7")
        await machine.wait_idle()
        assert machine.phase is Phase.SETTLED
        assert "Navigation to stream 7 failed" in caplog.text


class TestReset:
    async def test_reset_returns_to_idle(self, machine) -> None:
        _fill(machine)
        machine.reset()
        assert machine.phase is Phase.IDLE
        assert machine.draft.payment is None
        assert machine.draft.interval == ""
        assert machine.draft.start_time == machine.draft.min_time

    async def test_reset_cancels_discovery(self, machine, balance_book, fake_chain) -> None:
        _fill(machine)
        _fund(balance_book)
        await machine.submit()
        await machine.wait_idle()
        sub = fake_chain.subscriptions[0]

        machine.reset()
        assert sub.cancelled is True
        assert machine.tx_hash == ""

        # a late result for the dropped submission is ignored
        sub.on_stream("99")
        assert machine.phase is Phase.IDLE
        assert machine.stream_id == ""

    async def test_close_detaches_from_book(self, machine, balance_book) -> None:
        await machine.close()
        report = machine.report
        balance_book.set_balance(DAI, ACCOUNT, TokenAmount(decimals=18, value=1))
        assert machine.report is report


class TestEvents:
    async def test_phase_changes_are_published(
        self, app_config, token_directory, balance_book, fake_chain, fake_navigator, clock
    ) -> None:
        events = MagicMock()
        machine = StreamDraftStateMachine(
            tokens=token_directory,
            book=balance_book,
            chain=fake_chain,
            gas=fake_chain,
            submitter=fake_chain,
            discovery=fake_chain,
            navigator=fake_navigator,
            account=ACCOUNT,
            spender=SPENDER,
            clock=clock,
            events=events,
        )
        machine.reconcile()
        _fill(machine)
        _fund(balance_book)
        fake_chain.send_error = RPCError("boom")
        await machine.submit()

        published = [call.args[0] for call in events.notify_nowait.call_args_list]
        assert all(isinstance(e, DraftEvent) for e in published)
        assert [e.phase for e in published] == ["validating", "submitting", "failed"]
        assert published[-1].error == "boom"
