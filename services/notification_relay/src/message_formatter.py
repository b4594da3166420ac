"""
Telegram HTML rendering for notification intents.
"""

import logging
from typing import Any, Callable, Dict, Mapping

from shared.models import NotificationIntent, NotificationKind
from shared.utils import escape_html, format_grouped, format_number, to_decimal

logger = logging.getLogger(__name__)

ORDER_STATUS_EMOJI = {
    "matched": "✅",
    "filled": "✅",
    "partial": "⚠️",
    "cancelled": "❌",
    "failed": "❌",
    "pending": "⏳",
}


def _user_line(data: Mapping[str, Any]) -> str:
    return (
        f"User: @{escape_html(data.get('username'))} "
        f"(<code>{escape_html(data.get('user_id'))}</code>)"
    )


def _percent(ratio: Any) -> str:
    return f"{format_number(to_decimal(ratio) * 100)}%"


def _enabled(flag: Any) -> str:
    return "Enabled" if flag else "Disabled"


def _signed(value: Any) -> str:
    number = to_decimal(value)
    sign = "+" if number > 0 else ""
    return f"{sign}{format_number(number)}"


def format_user_registered(data: Mapping[str, Any]) -> str:
    user = data.get("user", {})
    return (
        "👤 <b>New user registered</b>\n"
        f"ID: <code>{escape_html(user.get('id'))}</code>\n"
        f"Telegram: @{escape_html(user.get('telegram_username'))}\n"
        f"Wallet: <code>{escape_html(user.get('wallet_address'))}</code>\n"
        f"Deposited: <b>{format_number(user.get('amount_deposited'))}</b>\n"
        f"Copytrading: <b>{_enabled(user.get('is_copytrading_enabled'))}</b>\n"
        f"Referral code: <code>{escape_html(user.get('referral_code') or 'None')}</code>\n"
        f"Created: <code>{escape_html(user.get('created_at'))}</code>"
    )


def format_deposit(data: Mapping[str, Any]) -> str:
    return (
        "💰 <b>Deposit detected</b>\n"
        f"{_user_line(data)}\n"
        f"Amount: <b>+{format_number(data.get('amount'))}</b>\n"
        f"New total: <b>{format_number(data.get('total'))}</b>"
    )


def format_pnl_swing(data: Mapping[str, Any]) -> str:
    emoji = "📈" if to_decimal(data.get("change")) > 0 else "📉"
    return (
        f"{emoji} <b>Significant PnL change</b>\n"
        f"{_user_line(data)}\n"
        f"Change: <b>{_signed(data.get('change'))}</b>\n"
        f"Total PnL: <b>{format_number(data.get('total'))}</b>"
    )


def format_volume_milestone(data: Mapping[str, Any]) -> str:
    return (
        "🎯 <b>Volume milestone reached!</b>\n"
        f"{_user_line(data)}\n"
        f"Milestone: <b>${format_grouped(data.get('milestone'))}</b>\n"
        f"Current volume: <b>${format_number(data.get('volume'))}</b>"
    )


def format_transaction_milestone(data: Mapping[str, Any]) -> str:
    return (
        "🏆 <b>Trading milestone reached!</b>\n"
        f"{_user_line(data)}\n"
        f"Milestone: <b>{format_grouped(data.get('milestone'))} transactions</b>\n"
        f"Transactions: <b>{format_number(data.get('transactions'))}</b>\n"
        f"Markets traded: <b>{format_number(data.get('markets_traded'))}</b>"
    )


def format_copytrading_toggled(data: Mapping[str, Any]) -> str:
    enabled = bool(data.get("enabled"))
    emoji = "🔄" if enabled else "⏸️"
    status = "enabled" if enabled else "disabled"
    return f"{emoji} <b>Copytrading {status}</b>\n{_user_line(data)}"


def format_fee_spike(data: Mapping[str, Any]) -> str:
    return (
        "💸 <b>High fees incurred</b>\n"
        f"{_user_line(data)}\n"
        f"Session fees: <b>${format_number(data.get('session_fees'))}</b>\n"
        f"Total fees: <b>${format_number(data.get('total'))}</b>"
    )


def format_trade_detected(data: Mapping[str, Any]) -> str:
    trade = data.get("trade", {})
    return (
        "🆕 <b>New trade detected</b>\n"
        f"User: <code>{escape_html(trade.get('user_id'))}</code>\n"
        f"Market: <b>{escape_html(trade.get('market_title'))}</b>\n"
        f"Outcome: <b>{escape_html(trade.get('outcome'))}</b>\n"
        f"Side: <b>{escape_html(trade.get('side'))}</b>\n"
        f"Original hash: <code>{escape_html(trade.get('original_trade_hash'))}</code>\n"
        f"Size: <b>{format_number(trade.get('original_size'))}</b> @ "
        f"<b>{format_number(trade.get('original_price'))}</b>\n"
        f"Position %: <b>{format_number(trade.get('position_percentage'))}%</b>\n"
        f"Status: <b>{escape_html(trade.get('status'))}</b>\n"
        f"Watched wallet: <code>{escape_html(trade.get('watched_wallet'))}</code>"
    )


def format_trade_status(data: Mapping[str, Any]) -> str:
    trade = data.get("trade", {})
    status = data.get("status")
    header = (
        f"User: <code>{escape_html(trade.get('user_id'))}</code>\n"
        f"Market: <b>{escape_html(trade.get('market_title'))}</b>\n"
    )

    if status == "executed":
        size = trade.get("copied_size") or trade.get("original_size")
        price = trade.get("copied_price") or trade.get("original_price")
        return (
            "✅ <b>Trade executed successfully</b>\n"
            f"{header}"
            f"Side: <b>{escape_html(trade.get('side'))}</b>\n"
            f"Size: <b>{format_number(size)}</b> @ <b>{format_number(price)}</b>\n"
            f"Trade hash: <code>{escape_html(trade.get('copied_trade_hash'))}</code>"
        )

    if status == "failed":
        return (
            "❌ <b>Trade failed</b>\n"
            f"{header}"
            f"Side: <b>{escape_html(trade.get('side'))}</b>\n"
            f"Error: <code>{escape_html(trade.get('error_message') or 'Unknown error')}</code>\n"
            f"Original hash: <code>{escape_html(trade.get('original_trade_hash'))}</code>"
        )

    return (
        "⏭️ <b>Trade skipped</b>\n"
        f"{header}"
        f"Reason: <code>{escape_html(trade.get('error_message') or 'Trade conditions not met')}</code>"
    )


def format_copy_wallet_added(data: Mapping[str, Any]) -> str:
    wallet = data.get("wallet", {})
    return (
        "👁️ <b>New wallet added for copying</b>\n"
        f"User: <code>{escape_html(wallet.get('user_id'))}</code>\n"
        f"Wallet: <code>{escape_html(wallet.get('wallet_address'))}</code>\n"
        f"Copy ratio: <b>{_percent(wallet.get('percent_ratio'))}</b>\n"
        f"Status: <b>{_enabled(wallet.get('is_enabled'))}</b>"
    )


def format_copy_wallet_toggled(data: Mapping[str, Any]) -> str:
    wallet = data.get("wallet", {})
    enabled = bool(data.get("enabled"))
    emoji = "✅" if enabled else "❌"
    status = "enabled" if enabled else "disabled"
    return (
        f"{emoji} <b>Copy wallet {status}</b>\n"
        f"User: <code>{escape_html(wallet.get('user_id'))}</code>\n"
        f"Wallet: <code>{escape_html(wallet.get('wallet_address'))}</code>\n"
        f"Copy ratio: <b>{_percent(wallet.get('percent_ratio'))}</b>"
    )


def format_copy_ratio_changed(data: Mapping[str, Any]) -> str:
    wallet = data.get("wallet", {})
    return (
        "⚙️ <b>Copy ratio updated</b>\n"
        f"User: <code>{escape_html(wallet.get('user_id'))}</code>\n"
        f"Wallet: <code>{escape_html(wallet.get('wallet_address'))}</code>\n"
        f"Old ratio: <b>{_percent(data.get('old_ratio'))}</b> → "
        f"<b>{_percent(data.get('new_ratio'))}</b>"
    )


def format_monthly_active_user(data: Mapping[str, Any]) -> str:
    record = data.get("record", {})
    return (
        "📊 <b>Monthly active user recorded</b>\n"
        f"User: <code>{escape_html(record.get('user_id'))}</code>\n"
        f"Month: <b>{escape_html(record.get('month_number'))}/{escape_html(record.get('year'))}</b>\n"
        f"Transactions: <b>{format_number(record.get('transaction_count'))}</b>"
    )


def format_order_update(data: Mapping[str, Any]) -> str:
    status = data.get("status")
    side = data.get("side")
    emoji = ORDER_STATUS_EMOJI.get(str(status), "📊")
    side_emoji = "🟢" if side == "YES" else "🔴"
    return (
        f"{emoji} <b>Order {escape_html(status)}</b> {side_emoji}\n"
        f"User: @{escape_html(data.get('username'))} (<code>{escape_html(data.get('user_id'))}</code>)\n"
        f"Market: <b>{escape_html(data.get('market_question'))}</b>\n"
        f"Side: <b>{escape_html(side)}</b> | Outcome: <b>{escape_html(data.get('outcome'))}</b>\n"
        f"Amount: <b>${format_number(data.get('amount'))}</b> | "
        f"Shares: <b>{format_number(data.get('shares'))}</b>\n"
        f"Price: <b>{format_number(data.get('execution_price'))}</b>\n"
        f"Order ID: <code>{escape_html(data.get('order_id'))}</code>\n"
        f"TX Hash: <code>{escape_html(data.get('tx_hash'))}</code>\n"
        f"Time: <code>{escape_html(data.get('timestamp'))}</code>"
    )


FORMATTERS: Dict[NotificationKind, Callable[[Mapping[str, Any]], str]] = {
    NotificationKind.USER_REGISTERED: format_user_registered,
    NotificationKind.DEPOSIT: format_deposit,
    NotificationKind.PNL_SWING: format_pnl_swing,
    NotificationKind.VOLUME_MILESTONE: format_volume_milestone,
    NotificationKind.TRANSACTION_MILESTONE: format_transaction_milestone,
    NotificationKind.COPYTRADING_TOGGLED: format_copytrading_toggled,
    NotificationKind.FEE_SPIKE: format_fee_spike,
    NotificationKind.TRADE_DETECTED: format_trade_detected,
    NotificationKind.TRADE_STATUS: format_trade_status,
    NotificationKind.COPY_WALLET_ADDED: format_copy_wallet_added,
    NotificationKind.COPY_WALLET_TOGGLED: format_copy_wallet_toggled,
    NotificationKind.COPY_RATIO_CHANGED: format_copy_ratio_changed,
    NotificationKind.MONTHLY_ACTIVE_USER: format_monthly_active_user,
    NotificationKind.ORDER_UPDATE: format_order_update,
}


def format_intent(intent: NotificationIntent) -> str:
    """Render an intent as Telegram HTML."""
    return FORMATTERS[intent.kind](intent.data)
