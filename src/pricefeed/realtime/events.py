"""
Business event relays.

Deposit and admin-stream events originate in the payments and persistence
layers; they are only relayed to subscribers through the broadcaster.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from pricefeed.config.constants import EVENT_ADMIN_DEPOSITS_STREAM, EVENT_DEPOSIT_UPDATED
from pricefeed.realtime.broadcaster import LiveUpdateBroadcaster


@dataclass(slots=True, frozen=True)
class DepositUpdate:
    """Transaction fields pushed when a deposit changes status."""

    transaction_id: int
    user_id: int
    status: str
    amount_usd: float
    type: str = "deposit"
    crypto_currency: str | None = None
    crypto_amount: float | None = None
    payment_id: str | None = None
    order_id: str | None = None


async def notify_deposit_update(
    broadcaster: LiveUpdateBroadcaster,
    update: DepositUpdate,
    new_balance: float,
) -> tuple[int, int]:
    """
    Tell the depositing user and every admin about a deposit status change.

    Delivery is best effort; the caller must not depend on it.

    Returns:
        Deliveries to the user and to admins.
    """
    timestamp = datetime.now(UTC).isoformat()

    to_user = await broadcaster.send_to_subscriber(
        update.user_id,
        EVENT_DEPOSIT_UPDATED,
        {
            "transactionId": update.transaction_id,
            "status": update.status,
            "amountUsd": update.amount_usd,
            "cryptoCurrency": update.crypto_currency,
            "cryptoAmount": update.crypto_amount,
            "newBalance": new_balance,
            "timestamp": timestamp,
        },
    )

    to_admins = await broadcaster.send_to_admins(
        EVENT_ADMIN_DEPOSITS_STREAM,
        {
            "userId": update.user_id,
            "transactionId": update.transaction_id,
            "type": update.type,
            "amountUsd": update.amount_usd,
            "cryptoCurrency": update.crypto_currency,
            "cryptoAmount": update.crypto_amount,
            "status": update.status,
            "paymentId": update.payment_id,
            "orderId": update.order_id,
            "timestamp": timestamp,
        },
    )

    return to_user, to_admins
