"""
Result types returned by the WaafiPay client.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

APPROVED = "APPROVED"
DECLINED = "DECLINED"
CANCELLED = "CANCELLED"
PENDING = "PENDING"


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a gateway amount without going through float."""
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


@dataclass
class PurchaseResult:
    success: bool
    hpp_url: Optional[str] = None
    gateway_order_id: Optional[str] = None
    reference_id: Optional[str] = None
    transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class TransactionInfo:
    success: bool
    transaction_id: Optional[str] = None
    state: Optional[str] = None
    reference_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    issuer_transaction_id: Optional[str] = None
    payer_id: Optional[str] = None
    payer_phone: Optional[str] = None
    payer_name: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class RefundResult:
    success: bool
    refund_transaction_id: Optional[str] = None
    state: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class CallbackData:
    """A gateway callback payload, normalised."""

    transaction_id: Optional[str] = None
    reference_id: Optional[str] = None
    state: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    issuer_transaction_id: Optional[str] = None
    payer_id: Optional[str] = None
    response_code: Optional[str] = None
    response_msg: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.state == APPROVED

    @property
    def is_declined(self) -> bool:
        return self.state == DECLINED

    @property
    def is_cancelled(self) -> bool:
        return self.state == CANCELLED

    @property
    def is_pending(self) -> bool:
        return self.state == PENDING


@dataclass
class ConnectionProbe:
    success: bool
    message: str = ""
    api_url: Optional[str] = None
    merchant_uid: Optional[str] = None
    hpp_key_configured: bool = False
    response_code: Optional[str] = None
    response_msg: Optional[str] = None
