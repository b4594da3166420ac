"""
Event classifier for change-feed row transitions.

Turns one ``ChangeEvent`` into zero or more ``NotificationIntent``s. The
decision is a pure function of the before/after images, except for volume
and transaction milestones, which consult the ``MilestoneTracker``.

UPDATEs whose ``before`` image holds nothing beyond the primary key are
dropped whole: without real prior values every numeric column would look
like it rose from zero.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from shared.models import (
    ChangeEvent,
    ChangeOperation,
    NotificationIntent,
    NotificationKind,
    TrackedTable,
)
from shared.utils import to_bool, to_decimal

from .milestone_tracker import (
    TRANSACTION_MILESTONES,
    VOLUME_MILESTONES,
    MilestoneTracker,
)

logger = logging.getLogger(__name__)

PRIMARY_KEY_COLUMNS = frozenset({"id"})

MIN_DEPOSIT_DELTA = Decimal("0.01")  # strictly greater than
MIN_PNL_SWING = Decimal("100")  # inclusive
MIN_FEE_INCREASE = Decimal("50")  # inclusive
MIN_RATIO_CHANGE = Decimal("0.001")  # strictly greater than

TRADE_STATUSES = ("executed", "failed", "skipped")

Row = Mapping[str, Any]
Handler = Callable[["EventClassifier", Row, Row], List[NotificationIntent]]


def has_prior_state(before: Optional[Row]) -> bool:
    """True when ``before`` carries columns other than the primary key."""
    if not before:
        return False
    return any(column not in PRIMARY_KEY_COLUMNS for column in before)


def _subject(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class EventClassifier:
    """Derives notification intents from change events."""

    def __init__(self, milestone_tracker: MilestoneTracker) -> None:
        self.milestone_tracker = milestone_tracker
        self._handlers: Dict[Tuple[TrackedTable, ChangeOperation], Handler] = {
            (TrackedTable.USERS, ChangeOperation.INSERT): EventClassifier._users_insert,
            (TrackedTable.USERS, ChangeOperation.UPDATE): EventClassifier._users_update,
            (TrackedTable.AUTO_TRADE, ChangeOperation.INSERT): EventClassifier._auto_trade_insert,
            (TrackedTable.AUTO_TRADE, ChangeOperation.UPDATE): EventClassifier._auto_trade_update,
            (TrackedTable.COPY_WALLETS, ChangeOperation.INSERT): EventClassifier._copy_wallets_insert,
            (TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE): EventClassifier._copy_wallets_update,
            (TrackedTable.MONTHLY_ACTIVE_USERS, ChangeOperation.INSERT): EventClassifier._monthly_active_insert,
        }

    def classify(self, event: ChangeEvent) -> List[NotificationIntent]:
        """
        Decide which notifications an event implies.

        Never raises: a handler failure is logged and yields no intents.

        Args:
            event: Change event with before/after images

        Returns:
            Intents in emission order
        """
        handler = self._handlers.get((event.table, event.operation))
        if handler is None:
            logger.debug(
                f"No handler for {event.table.value} {event.operation.value}, ignoring"
            )
            return []

        before: Row = event.before or {}
        after: Row = event.after or {}

        if event.operation == ChangeOperation.UPDATE and not has_prior_state(event.before):
            logger.debug(
                f"{event.table.value} UPDATE {event.primary_key}: before image has "
                f"only the primary key, skipping"
            )
            return []

        try:
            return handler(self, before, after)
        except Exception as e:
            logger.error(
                f"Failed to classify {event.table.value} {event.operation.value} "
                f"{event.primary_key}: {e}",
                exc_info=True,
            )
            return []

    # Users

    def _users_insert(self, before: Row, after: Row) -> List[NotificationIntent]:
        return [
            NotificationIntent(
                kind=NotificationKind.USER_REGISTERED,
                table=TrackedTable.USERS,
                subject_id=_subject(after.get("id")),
                data={"user": dict(after)},
            )
        ]

    def _users_update(self, before: Row, after: Row) -> List[NotificationIntent]:
        user_id = _subject(after.get("id"))
        base = {
            "user_id": after.get("id"),
            "username": after.get("telegram_username"),
        }
        intents: List[NotificationIntent] = []

        def emit(kind: NotificationKind, **data: Any) -> None:
            intents.append(
                NotificationIntent(
                    kind=kind,
                    table=TrackedTable.USERS,
                    subject_id=user_id,
                    data={**base, **data},
                )
            )

        # Deposit
        old_deposit = to_decimal(before.get("amount_deposited"))
        new_deposit = to_decimal(after.get("amount_deposited"))
        deposit = new_deposit - old_deposit
        if old_deposit >= 0 and new_deposit > old_deposit and deposit > MIN_DEPOSIT_DELTA:
            emit(NotificationKind.DEPOSIT, amount=deposit, total=new_deposit)

        # PnL swing, either direction
        old_pnl = to_decimal(before.get("total_pnl"))
        new_pnl = to_decimal(after.get("total_pnl"))
        pnl_change = new_pnl - old_pnl
        if abs(pnl_change) >= MIN_PNL_SWING:
            emit(NotificationKind.PNL_SWING, change=pnl_change, total=new_pnl)

        # Volume milestone
        old_volume = to_decimal(before.get("total_volume"))
        new_volume = to_decimal(after.get("total_volume"))
        if user_id is not None:
            milestone = self.milestone_tracker.check_crossing(
                user_id, "volume", old_volume, new_volume, VOLUME_MILESTONES
            )
            if milestone is not None:
                emit(
                    NotificationKind.VOLUME_MILESTONE,
                    milestone=milestone,
                    volume=new_volume,
                )

        # Transaction milestone
        old_txns = to_decimal(before.get("txns_executed"))
        new_txns = to_decimal(after.get("txns_executed"))
        if user_id is not None:
            milestone = self.milestone_tracker.check_crossing(
                user_id, "transactions", old_txns, new_txns, TRANSACTION_MILESTONES
            )
            if milestone is not None:
                emit(
                    NotificationKind.TRANSACTION_MILESTONE,
                    milestone=milestone,
                    transactions=new_txns,
                    markets_traded=after.get("markets_traded"),
                )

        # Copytrading flag, only when the prior value was actually delivered
        if "is_copytrading_enabled" in before:
            old_flag = to_bool(before.get("is_copytrading_enabled"))
            new_flag = to_bool(after.get("is_copytrading_enabled"))
            if old_flag != new_flag:
                emit(NotificationKind.COPYTRADING_TOGGLED, enabled=new_flag)
        else:
            logger.debug(
                f"Users UPDATE {user_id}: before image lacks is_copytrading_enabled"
            )

        # Fee spike
        old_fees = to_decimal(before.get("fees_total"))
        new_fees = to_decimal(after.get("fees_total"))
        fee_increase = new_fees - old_fees
        if fee_increase >= MIN_FEE_INCREASE:
            emit(NotificationKind.FEE_SPIKE, session_fees=fee_increase, total=new_fees)

        return intents

    # Auto_Trade

    def _auto_trade_insert(self, before: Row, after: Row) -> List[NotificationIntent]:
        return [
            NotificationIntent(
                kind=NotificationKind.TRADE_DETECTED,
                table=TrackedTable.AUTO_TRADE,
                subject_id=_subject(after.get("user_id")),
                data={"trade": dict(after)},
            )
        ]

    def _auto_trade_update(self, before: Row, after: Row) -> List[NotificationIntent]:
        status = str(after.get("status") or "").lower()
        previous = str(before.get("status") or "").lower()

        if status == previous or status not in TRADE_STATUSES:
            logger.debug(
                f"Auto_Trade UPDATE (no relevant transition): status={status} prev={previous}"
            )
            return []

        return [
            NotificationIntent(
                kind=NotificationKind.TRADE_STATUS,
                table=TrackedTable.AUTO_TRADE,
                subject_id=_subject(after.get("user_id")),
                data={"status": status, "previous_status": previous, "trade": dict(after)},
            )
        ]

    # Copy_Wallets

    def _copy_wallets_insert(self, before: Row, after: Row) -> List[NotificationIntent]:
        return [
            NotificationIntent(
                kind=NotificationKind.COPY_WALLET_ADDED,
                table=TrackedTable.COPY_WALLETS,
                subject_id=_subject(after.get("user_id")),
                data={"wallet": dict(after)},
            )
        ]

    def _copy_wallets_update(self, before: Row, after: Row) -> List[NotificationIntent]:
        subject_id = _subject(after.get("user_id"))
        old_enabled = to_bool(before.get("is_enabled"))
        new_enabled = to_bool(after.get("is_enabled"))

        if old_enabled != new_enabled:
            return [
                NotificationIntent(
                    kind=NotificationKind.COPY_WALLET_TOGGLED,
                    table=TrackedTable.COPY_WALLETS,
                    subject_id=subject_id,
                    data={"enabled": new_enabled, "wallet": dict(after)},
                )
            ]

        old_ratio = to_decimal(before.get("percent_ratio"))
        new_ratio = to_decimal(after.get("percent_ratio"))
        if abs(new_ratio - old_ratio) > MIN_RATIO_CHANGE:
            return [
                NotificationIntent(
                    kind=NotificationKind.COPY_RATIO_CHANGED,
                    table=TrackedTable.COPY_WALLETS,
                    subject_id=subject_id,
                    data={
                        "old_ratio": old_ratio,
                        "new_ratio": new_ratio,
                        "wallet": dict(after),
                    },
                )
            ]

        return []

    # Monthly_Active_Users

    def _monthly_active_insert(self, before: Row, after: Row) -> List[NotificationIntent]:
        return [
            NotificationIntent(
                kind=NotificationKind.MONTHLY_ACTIVE_USER,
                table=TrackedTable.MONTHLY_ACTIVE_USERS,
                subject_id=_subject(after.get("user_id")),
                data={"record": dict(after)},
            )
        ]
