"""
Pydantic models for the notification relay.

This module defines the data models shared by the relay components: change
events delivered by the database change-feed, the notification intents the
classifier derives from them, and the order records consumed from the queue.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class TrackedTable(str, Enum):
    """Database relations observed through the change-feed."""
    USERS = "Users"
    AUTO_TRADE = "Auto_Trade"
    COPY_WALLETS = "Copy_Wallets"
    MONTHLY_ACTIVE_USERS = "Monthly_Active_Users"


class ChangeOperation(str, Enum):
    """Row operation carried by a change event."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class NotificationKind(str, Enum):
    """Semantic notification tags produced by the classifier."""
    USER_REGISTERED = "user_registered"
    DEPOSIT = "deposit"
    PNL_SWING = "pnl_swing"
    VOLUME_MILESTONE = "volume_milestone"
    TRANSACTION_MILESTONE = "transaction_milestone"
    COPYTRADING_TOGGLED = "copytrading_toggled"
    FEE_SPIKE = "fee_spike"
    TRADE_DETECTED = "trade_detected"
    TRADE_STATUS = "trade_status"
    COPY_WALLET_ADDED = "copy_wallet_added"
    COPY_WALLET_TOGGLED = "copy_wallet_toggled"
    COPY_RATIO_CHANGED = "copy_ratio_changed"
    MONTHLY_ACTIVE_USER = "monthly_active_user"
    ORDER_UPDATE = "order_update"


class ChangeEvent(BaseModel):
    """One row transition delivered by the change-feed."""

    table: TrackedTable = Field(..., description="Relation the row belongs to")
    operation: ChangeOperation = Field(..., description="INSERT or UPDATE")
    before: Optional[Dict[str, Any]] = Field(None, description="Prior row image, possibly partial")
    after: Dict[str, Any] = Field(default_factory=dict, description="New row image")
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Arrival time at the relay",
    )

    model_config = ConfigDict()

    @property
    def primary_key(self) -> Optional[Any]:
        """Row id, preferring the new image."""
        if self.after.get("id") is not None:
            return self.after["id"]
        if self.before:
            return self.before.get("id")
        return None

    @field_serializer('received_at')
    def serialize_datetime(self, value: datetime) -> str | None:
        return value.isoformat() if value is not None else None


class NotificationIntent(BaseModel):
    """A notification the relay decided to send, before formatting."""

    kind: NotificationKind = Field(..., description="Semantic notification tag")
    table: Optional[TrackedTable] = Field(None, description="Source relation, if any")
    subject_id: Optional[str] = Field(None, description="User or row the notification is about")
    data: Dict[str, Any] = Field(default_factory=dict, description="Values needed to format the message")

    model_config = ConfigDict()


class QueueOrderMessage(BaseModel):
    """Order lifecycle record published to the order queue."""

    user_id: Optional[Union[str, int]] = Field(None, alias="userId")
    username: Optional[str] = Field(None, alias="username")
    order_id: Optional[Union[str, int]] = Field(None, alias="orderId")
    order_type: Optional[str] = Field(None, alias="orderType")
    side: Optional[str] = Field(None, alias="side")
    market_id: Optional[Union[str, int]] = Field(None, alias="marketId")
    market_question: Optional[str] = Field(None, alias="marketQuestion")
    amount: Optional[Union[str, float, int]] = Field(None, alias="amount")
    shares: Optional[Union[str, float, int]] = Field(None, alias="shares")
    execution_price: Optional[Union[str, float, int]] = Field(None, alias="executionPrice")
    tx_hash: Optional[str] = Field(None, alias="txHash")
    timestamp: Optional[Union[str, int, float]] = Field(None, alias="timestamp")
    status: Optional[str] = Field(None, alias="status")
    outcome: Optional[str] = Field(None, alias="outcome")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_intent(self) -> NotificationIntent:
        """Wrap the order as an order-update notification intent."""
        return NotificationIntent(
            kind=NotificationKind.ORDER_UPDATE,
            subject_id=str(self.user_id) if self.user_id is not None else None,
            data=self.model_dump(),
        )
