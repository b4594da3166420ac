from decimal import Decimal
from unittest.mock import patch

import pytest

from services.notification_relay.src.event_classifier import EventClassifier, has_prior_state
from shared.models import ChangeOperation, NotificationKind, TrackedTable


def kinds(intents):
    return [intent.kind for intent in intents]


class TestPriorState:
    """Test suite for partial before-image detection"""

    @pytest.mark.parametrize(
        "before,expected",
        [
            (None, False),
            ({}, False),
            ({"id": 1}, False),
            ({"id": 1, "total_pnl": 0}, True),
            ({"total_pnl": 0}, True),
        ],
    )
    def test_has_prior_state(self, before, expected) -> None:
        assert has_prior_state(before) is expected


class TestUsersClassification:
    """Test suite for Users row transitions"""

    def test_insert_emits_user_registered(self, classifier, make_event, user_row) -> None:
        intents = classifier.classify(make_event(TrackedTable.USERS, ChangeOperation.INSERT, user_row))
        assert kinds(intents) == [NotificationKind.USER_REGISTERED]
        assert intents[0].subject_id == "42"
        assert intents[0].data["user"]["telegram_username"] == "alice"

    def test_update_with_only_primary_key_in_before_is_suppressed(
        self, classifier, make_event, user_row
    ) -> None:
        after = {**user_row, "amount_deposited": 500, "total_pnl": 1000, "total_volume": 5000}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before={"id": 42})
        assert classifier.classify(event) == []

    def test_update_without_before_is_suppressed(self, classifier, make_event, user_row) -> None:
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, user_row, before=None)
        assert classifier.classify(event) == []

    def test_deposit_at_threshold_is_ignored(self, classifier, make_event, user_row) -> None:
        after = {**user_row, "amount_deposited": Decimal("100.01")}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=user_row)
        assert classifier.classify(event) == []

    def test_deposit_above_threshold_is_reported_exactly(self, classifier, make_event, user_row) -> None:
        after = {**user_row, "amount_deposited": 100.02}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=user_row)
        intents = classifier.classify(event)

        assert kinds(intents) == [NotificationKind.DEPOSIT]
        assert intents[0].data["amount"] == Decimal("0.02")
        assert intents[0].data["total"] == Decimal("100.02")
        assert intents[0].data["username"] == "alice"
        assert intents[0].data["user_id"] == 42

    def test_deposit_requires_non_negative_previous_balance(
        self, classifier, make_event, user_row
    ) -> None:
        before = {**user_row, "amount_deposited": -5}
        after = {**user_row, "amount_deposited": 50}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=before)
        assert NotificationKind.DEPOSIT not in kinds(classifier.classify(event))

    def test_withdrawal_is_not_a_deposit(self, classifier, make_event, user_row) -> None:
        after = {**user_row, "amount_deposited": 20}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=user_row)
        assert classifier.classify(event) == []

    def test_pnl_swing_threshold_is_inclusive(self, classifier, make_event, user_row) -> None:
        gain = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "total_pnl": 100}, before=user_row
        )
        small = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "total_pnl": "99.99"}, before=user_row
        )
        assert kinds(classifier.classify(gain)) == [NotificationKind.PNL_SWING]
        assert classifier.classify(small) == []

    def test_pnl_swing_reports_losses(self, classifier, make_event, user_row) -> None:
        event = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "total_pnl": -250}, before=user_row
        )
        intents = classifier.classify(event)
        assert kinds(intents) == [NotificationKind.PNL_SWING]
        assert intents[0].data["change"] == Decimal("-250")

    def test_volume_milestone_uses_tracker(self, classifier, make_event, user_row) -> None:
        before = {**user_row, "total_volume": 900}
        first = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "total_volume": 1200}, before=before
        )
        intents = classifier.classify(first)
        assert kinds(intents) == [NotificationKind.VOLUME_MILESTONE]
        assert intents[0].data["milestone"] == Decimal("1000")
        assert intents[0].data["volume"] == Decimal("1200")

        # same transition seen again does not renotify
        assert classifier.classify(first) == []

    def test_transaction_milestone_includes_markets_traded(
        self, classifier, make_event, user_row
    ) -> None:
        before = {**user_row, "txns_executed": 9}
        after = {**user_row, "txns_executed": 10, "markets_traded": 4}
        intents = classifier.classify(
            make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=before)
        )
        assert kinds(intents) == [NotificationKind.TRANSACTION_MILESTONE]
        assert intents[0].data["milestone"] == Decimal("10")
        assert intents[0].data["markets_traded"] == 4

    def test_copytrading_toggle(self, classifier, make_event, user_row) -> None:
        after = {**user_row, "is_copytrading_enabled": True}
        intents = classifier.classify(
            make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=user_row)
        )
        assert kinds(intents) == [NotificationKind.COPYTRADING_TOGGLED]
        assert intents[0].data["enabled"] is True

    def test_copytrading_flag_missing_from_before_is_not_a_toggle(
        self, classifier, make_event, user_row
    ) -> None:
        before = {"id": 42, "total_pnl": 0}
        after = {**user_row, "is_copytrading_enabled": True}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=before)
        assert NotificationKind.COPYTRADING_TOGGLED not in kinds(classifier.classify(event))

    def test_fee_spike_threshold_is_inclusive(self, classifier, make_event, user_row) -> None:
        at = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "fees_total": 50}, before=user_row
        )
        below = make_event(
            TrackedTable.USERS, ChangeOperation.UPDATE, {**user_row, "fees_total": "49.99"}, before=user_row
        )
        intents = classifier.classify(at)
        assert kinds(intents) == [NotificationKind.FEE_SPIKE]
        assert intents[0].data["session_fees"] == Decimal("50")
        assert classifier.classify(below) == []

    def test_multiple_changes_emit_in_fixed_order(self, classifier, make_event, user_row) -> None:
        before = {**user_row, "total_volume": 900, "txns_executed": 9}
        after = {
            **user_row,
            "amount_deposited": 200,
            "total_pnl": 150,
            "total_volume": 1100,
            "txns_executed": 10,
            "is_copytrading_enabled": True,
            "fees_total": 75,
        }
        intents = classifier.classify(
            make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=before)
        )
        assert kinds(intents) == [
            NotificationKind.DEPOSIT,
            NotificationKind.PNL_SWING,
            NotificationKind.VOLUME_MILESTONE,
            NotificationKind.TRANSACTION_MILESTONE,
            NotificationKind.COPYTRADING_TOGGLED,
            NotificationKind.FEE_SPIKE,
        ]

    def test_handler_failure_yields_no_intents(self, classifier, make_event, user_row) -> None:
        after = {**user_row, "total_volume": 5000}
        event = make_event(TrackedTable.USERS, ChangeOperation.UPDATE, after, before=user_row)
        with patch.object(
            classifier.milestone_tracker, "check_crossing", side_effect=RuntimeError("boom")
        ):
            assert classifier.classify(event) == []


class TestAutoTradeClassification:
    """Test suite for Auto_Trade row transitions"""

    @pytest.fixture
    def trade_row(self) -> dict:
        return {
            "id": 9,
            "user_id": 42,
            "market_title": "Will it rain?",
            "side": "BUY",
            "status": "pending",
            "updated_at": "2024-05-01T11:00:00+00:00",
        }

    def test_insert_emits_trade_detected(self, classifier, make_event, trade_row) -> None:
        intents = classifier.classify(make_event(TrackedTable.AUTO_TRADE, ChangeOperation.INSERT, trade_row))
        assert kinds(intents) == [NotificationKind.TRADE_DETECTED]
        assert intents[0].subject_id == "42"

    @pytest.mark.parametrize("status", ["executed", "failed", "skipped", "EXECUTED"])
    def test_terminal_status_transition(self, classifier, make_event, trade_row, status) -> None:
        after = {**trade_row, "status": status}
        intents = classifier.classify(
            make_event(TrackedTable.AUTO_TRADE, ChangeOperation.UPDATE, after, before=trade_row)
        )
        assert kinds(intents) == [NotificationKind.TRADE_STATUS]
        assert intents[0].data["status"] == status.lower()
        assert intents[0].data["previous_status"] == "pending"

    def test_unchanged_status_is_ignored(self, classifier, make_event, trade_row) -> None:
        before = {**trade_row, "status": "executed"}
        after = {**trade_row, "status": "executed", "copied_size": 3}
        event = make_event(TrackedTable.AUTO_TRADE, ChangeOperation.UPDATE, after, before=before)
        assert classifier.classify(event) == []

    def test_non_terminal_status_is_ignored(self, classifier, make_event, trade_row) -> None:
        after = {**trade_row, "status": "processing"}
        event = make_event(TrackedTable.AUTO_TRADE, ChangeOperation.UPDATE, after, before=trade_row)
        assert classifier.classify(event) == []


class TestCopyWalletsClassification:
    """Test suite for Copy_Wallets row transitions"""

    @pytest.fixture
    def wallet_row(self) -> dict:
        return {
            "id": 3,
            "user_id": 42,
            "wallet_address": "0xfeed",
            "percent_ratio": 0.5,
            "is_enabled": True,
        }

    def test_insert_emits_wallet_added(self, classifier, make_event, wallet_row) -> None:
        intents = classifier.classify(make_event(TrackedTable.COPY_WALLETS, ChangeOperation.INSERT, wallet_row))
        assert kinds(intents) == [NotificationKind.COPY_WALLET_ADDED]

    def test_enabled_flip(self, classifier, make_event, wallet_row) -> None:
        after = {**wallet_row, "is_enabled": False}
        intents = classifier.classify(
            make_event(TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE, after, before=wallet_row)
        )
        assert kinds(intents) == [NotificationKind.COPY_WALLET_TOGGLED]
        assert intents[0].data["enabled"] is False

    def test_toggle_takes_precedence_over_ratio(self, classifier, make_event, wallet_row) -> None:
        after = {**wallet_row, "is_enabled": False, "percent_ratio": 0.9}
        intents = classifier.classify(
            make_event(TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE, after, before=wallet_row)
        )
        assert kinds(intents) == [NotificationKind.COPY_WALLET_TOGGLED]

    def test_ratio_change_above_threshold(self, classifier, make_event, wallet_row) -> None:
        after = {**wallet_row, "percent_ratio": 0.75}
        intents = classifier.classify(
            make_event(TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE, after, before=wallet_row)
        )
        assert kinds(intents) == [NotificationKind.COPY_RATIO_CHANGED]
        assert intents[0].data["old_ratio"] == Decimal("0.5")
        assert intents[0].data["new_ratio"] == Decimal("0.75")

    def test_ratio_change_at_threshold_is_ignored(self, classifier, make_event, wallet_row) -> None:
        after = {**wallet_row, "percent_ratio": 0.501}
        event = make_event(TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE, after, before=wallet_row)
        assert classifier.classify(event) == []


class TestMonthlyActiveUsersClassification:
    """Test suite for Monthly_Active_Users rows"""

    def test_insert_emits_monthly_active_user(self, classifier, make_event) -> None:
        row = {"id": 1, "user_id": 42, "month_number": 5, "year": 2024, "transaction_count": 12}
        intents = classifier.classify(
            make_event(TrackedTable.MONTHLY_ACTIVE_USERS, ChangeOperation.INSERT, row)
        )
        assert kinds(intents) == [NotificationKind.MONTHLY_ACTIVE_USER]
        assert intents[0].data["record"] == row

    def test_update_is_not_handled(self, classifier, make_event) -> None:
        row = {"id": 1, "user_id": 42, "transaction_count": 13}
        event = make_event(
            TrackedTable.MONTHLY_ACTIVE_USERS, ChangeOperation.UPDATE, row, before={"id": 1, "transaction_count": 12}
        )
        assert classifier.classify(event) == []
