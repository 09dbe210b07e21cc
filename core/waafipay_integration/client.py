"""
WaafiPay Payment Gateway Client

This module implements the WaafiPay hosted payment page (HPP) flow used for
mobile money and card payments, plus transaction lookup, refunds and a
connectivity probe.

Features:
- Request envelope with a fresh ``requestId`` and UTC timestamp per call
- Separate credential sets for hosted-page calls (merchant uid + HPP key)
  and server API calls (merchant uid + API user id + API key)
- Phone number normalisation into the gateway's subscription id format
- Structured result objects: transport failures and non-success response
  codes are returned, never raised

Author: Academy Development Team
Version: 1.0.0
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from .exceptions import (
    WaafiPayConnectionException,
    WaafiPayException,
    WaafiPayInvalidResponseException,
    WaafiPayTimeoutException,
)
from .results import (
    CallbackData,
    ConnectionProbe,
    PurchaseResult,
    RefundResult,
    TransactionInfo,
    to_decimal,
)

logger = logging.getLogger(__name__)

SUCCESS_CODE = "2001"
SCHEMA_VERSION = "1.0"
CHANNEL_NAME = "WEB"
DEFAULT_PAYMENT_METHOD = "MWALLET_ACCOUNT"
MASKED_FIELDS = ("apiKey", "hppKey")


def clean_reference_id(reference_id: Optional[str]) -> str:
    """
    Strip the ``?query`` suffix the gateway sometimes appends to references.

    >>> clean_reference_id("ORD-ABC123?foo=bar")
    'ORD-ABC123'
    """
    if not reference_id:
        return ""
    return str(reference_id).split("?", 1)[0].strip()


def format_amount(amount) -> str:
    return f"{Decimal(str(amount)).quantize(Decimal('0.01'))}"


def _mask(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: ("***" if key in MASKED_FIELDS and value else value)
        for key, value in params.items()
    }


class WaafiPayClient:
    """
    Client for the WaafiPay ASM API.

    Attributes:
        api_url (str): Gateway endpoint
        merchant_uid (str): Merchant identifier used by every call
        country_code (str): Prefix added to local payer phone numbers

    Example:
        >>> client = WaafiPayClient()
        >>> result = client.initiate_purchase("ORD-1", Decimal("29.99"), "USD", ...)
        >>> if result.success:
        ...     redirect(result.hpp_url)
    """

    def __init__(self, **overrides) -> None:
        self.api_url = overrides.get("api_url", settings.WAAFIPAY_API_URL)
        self.merchant_uid = overrides.get("merchant_uid", settings.WAAFIPAY_MERCHANT_UID)
        self.api_user_id = overrides.get("api_user_id", settings.WAAFIPAY_API_USER_ID)
        self.api_key = overrides.get("api_key", settings.WAAFIPAY_API_KEY)
        self.hpp_key = overrides.get("hpp_key", settings.WAAFIPAY_HPP_KEY)
        self.store_id = overrides.get("store_id", settings.WAAFIPAY_STORE_ID)
        self.country_code = str(overrides.get("country_code", settings.WAAFIPAY_COUNTRY_CODE))
        self.timeout = overrides.get("timeout", settings.WAAFIPAY_REQUEST_TIMEOUT)

    # ------------------------------------------------------------------
    # Envelope and transport
    # ------------------------------------------------------------------

    def _hpp_credentials(self) -> Dict[str, Any]:
        return {"merchantUid": self.merchant_uid, "hppKey": self.hpp_key}

    def _api_credentials(self) -> Dict[str, Any]:
        return {
            "merchantUid": self.merchant_uid,
            "apiUserId": self.api_user_id,
            "apiKey": self.api_key,
        }

    def build_envelope(self, service_name: str, service_params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "requestId": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "channelName": CHANNEL_NAME,
            "serviceName": service_name,
            "serviceParams": service_params,
        }

    def _post(self, service_name: str, service_params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one service call and return the decoded response body.

        Raises:
            WaafiPayException: On timeout, connection failure or invalid JSON
        """
        envelope = self.build_envelope(service_name, service_params)
        logger.debug(
            f"WaafiPay {service_name} request {envelope['requestId']}: "
            f"{_mask(service_params)}"
        )

        try:
            response = requests.post(
                self.api_url,
                json=envelope,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise WaafiPayTimeoutException(self.timeout)
        except requests.exceptions.RequestException as e:
            raise WaafiPayConnectionException(f"WaafiPay connection error: {str(e)}")

        try:
            data = response.json()
        except ValueError:
            raise WaafiPayInvalidResponseException(
                f"Invalid JSON in WaafiPay {service_name} response",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise WaafiPayInvalidResponseException(
                f"Unexpected WaafiPay {service_name} response shape",
                status_code=response.status_code,
            )

        logger.debug(
            f"WaafiPay {service_name} response: "
            f"{data.get('responseCode')} {data.get('responseMsg')}"
        )
        return data

    def normalize_phone(self, phone: Optional[str]) -> Optional[str]:
        """
        Convert a payer phone number into a subscription id.

        >>> WaafiPayClient(country_code="252").normalize_phone("+252 61-555 0000")
        '252615550000'
        >>> WaafiPayClient(country_code="252").normalize_phone("0615550000")
        '252615550000'
        """
        if not phone:
            return None
        digits = re.sub(r"\D", "", str(phone)).lstrip("0")
        if not digits:
            return None
        if not digits.startswith(self.country_code):
            digits = f"{self.country_code}{digits}"
        return digits

    # ------------------------------------------------------------------
    # Service calls
    # ------------------------------------------------------------------

    def initiate_purchase(
        self,
        reference_id: str,
        amount,
        currency: str,
        description: Optional[str] = None,
        payer_phone: Optional[str] = None,
        payment_method: str = DEFAULT_PAYMENT_METHOD,
        success_url: Optional[str] = None,
        failure_url: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Create a hosted payment page session.

        ``callback_url`` is the server-to-server notification target. The
        gateway takes it from the merchant configuration, so it is only
        logged here.
        """
        service_params = {
            **self._hpp_credentials(),
            "paymentMethod": payment_method or DEFAULT_PAYMENT_METHOD,
            "hppSuccessCallbackUrl": success_url,
            "hppFailureCallbackUrl": failure_url,
            "hppRespDataFormat": 1,
            "transactionInfo": {
                "referenceId": reference_id,
                "amount": format_amount(amount),
                "currency": currency,
                "description": (description or f"Payment for order {reference_id}")[:255],
            },
        }
        if self.store_id:
            service_params["storeId"] = int(self.store_id)
        subscription_id = self.normalize_phone(payer_phone)
        if subscription_id:
            service_params["subscriptionId"] = subscription_id

        logger.info(
            f"Initiating WaafiPay purchase for {reference_id} "
            f"({service_params['transactionInfo']['amount']} {currency}), "
            f"callback {callback_url}"
        )
        try:
            data = self._post("HPP_PURCHASE", service_params)
        except WaafiPayException as e:
            logger.error(f"WaafiPay HPP_PURCHASE failed for {reference_id}: {e.message}")
            return PurchaseResult(success=False, error_code=e.error_code, error_message=e.message)

        params = data.get("params") or {}
        if data.get("responseCode") == SUCCESS_CODE:
            return PurchaseResult(
                success=True,
                hpp_url=params.get("hppUrl"),
                gateway_order_id=params.get("orderId"),
                reference_id=params.get("referenceId"),
                transaction_id=params.get("transactionId"),
            )

        logger.warning(
            f"WaafiPay HPP_PURCHASE rejected for {reference_id}: "
            f"{data.get('responseCode')} {data.get('responseMsg')}"
        )
        return PurchaseResult(
            success=False,
            error_code=data.get("responseCode"),
            error_message=data.get("responseMsg") or "Payment initiation failed",
        )

    def get_transaction_info(self, transaction_id: str) -> TransactionInfo:
        """Look up the authoritative state of a hosted-page transaction."""
        service_params = {**self._hpp_credentials(), "transactionId": transaction_id}
        if self.store_id:
            service_params["storeId"] = int(self.store_id)

        try:
            data = self._post("HPP_GETTRANINFO", service_params)
        except WaafiPayException as e:
            logger.error(f"WaafiPay HPP_GETTRANINFO failed for {transaction_id}: {e.message}")
            return TransactionInfo(
                success=False,
                transaction_id=transaction_id,
                error_code=e.error_code,
                error_message=e.message,
            )

        if data.get("responseCode") != SUCCESS_CODE:
            return TransactionInfo(
                success=False,
                transaction_id=transaction_id,
                error_code=data.get("responseCode"),
                error_message=data.get("responseMsg") or "Failed to get transaction info",
            )

        params = data.get("params") or {}
        return TransactionInfo(
            success=True,
            transaction_id=params.get("transactionId") or transaction_id,
            state=params.get("state"),
            reference_id=clean_reference_id(params.get("referenceId")) or None,
            amount=to_decimal(params.get("amount")),
            currency=params.get("currency"),
            issuer_transaction_id=params.get("issuerTransactionId"),
            payer_id=params.get("payerId"),
            payer_phone=params.get("payerPhone"),
            payer_name=params.get("payerName"),
        )

    def refund(self, transaction_id: str, amount, reason: Optional[str] = None) -> RefundResult:
        service_params = {
            **self._api_credentials(),
            "transactionId": transaction_id,
            "transactionInfo": {
                "amount": format_amount(amount),
                "description": reason or "Refund processed",
            },
        }

        try:
            data = self._post("API_REFUND", service_params)
        except WaafiPayException as e:
            logger.error(f"WaafiPay API_REFUND failed for {transaction_id}: {e.message}")
            return RefundResult(success=False, error_code=e.error_code, error_message=e.message)

        if data.get("responseCode") == SUCCESS_CODE:
            params = data.get("params") or {}
            logger.info(f"WaafiPay refund accepted for {transaction_id}")
            return RefundResult(
                success=True,
                refund_transaction_id=params.get("transactionId"),
                state=params.get("state"),
            )

        return RefundResult(
            success=False,
            error_code=data.get("responseCode"),
            error_message=data.get("responseMsg") or "Refund failed",
        )

    @staticmethod
    def parse_callback(payload: Dict[str, Any]) -> CallbackData:
        """
        Normalise a callback payload. Performs no I/O.

        The reference id is cleaned of any ``?query`` suffix.
        """
        payload = payload or {}
        state = payload.get("state")
        return CallbackData(
            transaction_id=payload.get("transactionId") or None,
            reference_id=clean_reference_id(payload.get("referenceId")) or None,
            state=str(state).upper() if state else None,
            amount=to_decimal(payload.get("amount")),
            currency=payload.get("currency"),
            issuer_transaction_id=payload.get("issuerTransactionId"),
            payer_id=payload.get("payerId"),
            response_code=payload.get("responseCode"),
            response_msg=payload.get("responseMsg"),
        )

    def test_connection(self) -> ConnectionProbe:
        """
        Check whether the gateway is reachable.

        Any response code in the 2xxx, 4xxx or 5xxx ranges means the API
        answered, even if it rejected the probe itself.
        """
        probe = ConnectionProbe(
            success=False,
            api_url=self.api_url,
            merchant_uid=self.merchant_uid,
            hpp_key_configured=bool(self.hpp_key),
        )
        try:
            data = self._post(
                "API_CREDITACCOUNT_INFO",
                {**self._api_credentials(), "accountNo": "0"},
            )
        except WaafiPayException as e:
            probe.message = f"WaafiPay connection error: {e.message}"
            return probe

        response_code = str(data.get("responseCode") or "")
        probe.response_code = response_code or None
        probe.response_msg = data.get("responseMsg")
        probe.success = response_code[:1] in ("2", "4", "5") and bool(response_code)
        probe.message = (
            "WaafiPay API is reachable" if probe.success else "WaafiPay connection failed"
        )
        return probe


class _LazyWaafiPayClient:
    """Defers reading settings until the client is first used."""

    def __init__(self):
        self._instance: Optional[WaafiPayClient] = None

    def __getattr__(self, name):
        if self._instance is None:
            self._instance = WaafiPayClient()
        return getattr(self._instance, name)

    def reset(self):
        self._instance = None


waafipay_client = _LazyWaafiPayClient()
