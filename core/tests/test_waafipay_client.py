from decimal import Decimal
from unittest.mock import patch

import requests
from django.test import SimpleTestCase

from core.waafipay_integration.client import WaafiPayClient, clean_reference_id

from .helpers import fake_response

"""
    Tests für den WaafiPay-Client: Umschlag, Zugangsdaten je Dienst,
    Telefonnummern, Callback-Auswertung und Fehlerbehandlung.
"""


def make_client(**overrides):
    options = {
        "api_url": "https://gateway.test/asm",
        "merchant_uid": "M0910001",
        "api_user_id": "1000001",
        "api_key": "API-KEY",
        "hpp_key": "HPP-KEY",
        "store_id": None,
        "country_code": "252",
        "timeout": 7,
    }
    options.update(overrides)
    return WaafiPayClient(**options)


class ReferenceCleaningTests(SimpleTestCase):
    def test_query_suffix_is_stripped(self):
        self.assertEqual(clean_reference_id("ORD-ABC123?foo=bar"), "ORD-ABC123")
        self.assertEqual(clean_reference_id(" ORD-ABC123 "), "ORD-ABC123")
        self.assertEqual(clean_reference_id(None), "")


class PhoneNormalisationTests(SimpleTestCase):
    def test_formats(self):
        client = make_client()
        self.assertEqual(client.normalize_phone("+252 61-555 0000"), "252615550000")
        self.assertEqual(client.normalize_phone("0615550000"), "252615550000")
        self.assertEqual(client.normalize_phone("615550000"), "252615550000")
        self.assertIsNone(client.normalize_phone(""))
        self.assertIsNone(client.normalize_phone("000"))


@patch("core.waafipay_integration.client.requests.post")
class PurchaseTests(SimpleTestCase):
    def test_hosted_page_session(self, mock_post):
        mock_post.return_value = fake_response(200, {
            "responseCode": "2001",
            "responseMsg": "RCS_SUCCESS",
            "params": {
                "hppUrl": "https://gateway.test/hpp/abc",
                "orderId": "GW-1",
                "referenceId": "ORD-1",
                "transactionId": "TX-1",
            },
        })

        result = make_client(store_id="42").initiate_purchase(
            "ORD-1", Decimal("29.9"), "USD", payer_phone="0615550000",
            success_url="https://shop.test/ok", failure_url="https://shop.test/fail",
        )

        self.assertTrue(result.success)
        self.assertEqual(result.hpp_url, "https://gateway.test/hpp/abc")
        self.assertEqual(result.transaction_id, "TX-1")

        envelope = mock_post.call_args.kwargs["json"]
        self.assertEqual(envelope["schemaVersion"], "1.0")
        self.assertEqual(envelope["channelName"], "WEB")
        self.assertEqual(envelope["serviceName"], "HPP_PURCHASE")
        params = envelope["serviceParams"]
        self.assertEqual(params["merchantUid"], "M0910001")
        self.assertEqual(params["hppKey"], "HPP-KEY")
        self.assertNotIn("apiKey", params)
        self.assertNotIn("apiUserId", params)
        self.assertEqual(params["storeId"], 42)
        self.assertEqual(params["subscriptionId"], "252615550000")
        self.assertEqual(params["transactionInfo"]["amount"], "29.90")
        self.assertEqual(params["transactionInfo"]["description"], "Payment for order ORD-1")
        self.assertEqual(mock_post.call_args.kwargs["timeout"], 7)

    def test_each_call_has_fresh_request_id(self, mock_post):
        mock_post.return_value = fake_response(200, {"responseCode": "2001", "params": {}})
        client = make_client()

        client.initiate_purchase("ORD-1", "10", "USD")
        client.initiate_purchase("ORD-1", "10", "USD")

        first, second = (call.kwargs["json"]["requestId"] for call in mock_post.call_args_list)
        self.assertNotEqual(first, second)

    def test_description_is_truncated(self, mock_post):
        mock_post.return_value = fake_response(200, {"responseCode": "2001", "params": {}})

        make_client().initiate_purchase("ORD-1", "10", "USD", description="x" * 300)

        description = mock_post.call_args.kwargs["json"]["serviceParams"]["transactionInfo"]["description"]
        self.assertEqual(len(description), 255)

    def test_business_rejection(self, mock_post):
        mock_post.return_value = fake_response(200, {"responseCode": "5310", "responseMsg": "RCS_USER_REJECTED"})

        result = make_client().initiate_purchase("ORD-1", "10", "USD")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "5310")
        self.assertEqual(result.error_message, "RCS_USER_REJECTED")

    def test_timeout_is_returned_not_raised(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout()

        result = make_client().initiate_purchase("ORD-1", "10", "USD")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "TIMEOUT")

    def test_connection_error_is_returned_not_raised(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        result = make_client().initiate_purchase("ORD-1", "10", "USD")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "CONNECTION_ERROR")

    def test_invalid_json_is_returned_not_raised(self, mock_post):
        mock_post.return_value = fake_response(502, None, raise_on_json=True)

        result = make_client().initiate_purchase("ORD-1", "10", "USD")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "INVALID_RESPONSE")


@patch("core.waafipay_integration.client.requests.post")
class TransactionAndRefundTests(SimpleTestCase):
    def test_transaction_info(self, mock_post):
        mock_post.return_value = fake_response(200, {
            "responseCode": "2001",
            "params": {
                "transactionId": "TX-1",
                "state": "APPROVED",
                "referenceId": "ORD-1?x=1",
                "amount": "29.90",
                "currency": "USD",
                "issuerTransactionId": "ISS-1",
                "payerId": "P-1",
            },
        })

        info = make_client().get_transaction_info("TX-1")

        self.assertTrue(info.success)
        self.assertEqual(info.state, "APPROVED")
        self.assertEqual(info.reference_id, "ORD-1")
        self.assertEqual(info.amount, Decimal("29.90"))
        self.assertEqual(mock_post.call_args.kwargs["json"]["serviceName"], "HPP_GETTRANINFO")
        self.assertIn("hppKey", mock_post.call_args.kwargs["json"]["serviceParams"])

    def test_refund_uses_api_credentials(self, mock_post):
        mock_post.return_value = fake_response(200, {
            "responseCode": "2001",
            "params": {"transactionId": "RF-1", "state": "APPROVED"},
        })

        result = make_client().refund("TX-1", Decimal("10"), "Changed mind")

        self.assertTrue(result.success)
        self.assertEqual(result.refund_transaction_id, "RF-1")
        envelope = mock_post.call_args.kwargs["json"]
        self.assertEqual(envelope["serviceName"], "API_REFUND")
        params = envelope["serviceParams"]
        self.assertEqual(params["apiUserId"], "1000001")
        self.assertEqual(params["apiKey"], "API-KEY")
        self.assertNotIn("hppKey", params)
        self.assertEqual(params["transactionInfo"]["amount"], "10.00")

    def test_connection_probe_accepts_business_errors(self, mock_post):
        mock_post.return_value = fake_response(200, {"responseCode": "5206", "responseMsg": "RCS_NO_ACCOUNT"})

        probe = make_client().test_connection()

        self.assertTrue(probe.success)
        self.assertEqual(mock_post.call_args.kwargs["json"]["serviceName"], "API_CREDITACCOUNT_INFO")

    def test_connection_probe_fails_on_transport_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        self.assertFalse(make_client().test_connection().success)


class CallbackParsingTests(SimpleTestCase):
    def test_parse_callback(self):
        data = WaafiPayClient.parse_callback({
            "transactionId": "TX-1",
            "referenceId": "ORD-1?utm=x",
            "state": "approved",
            "amount": "29.9",
            "currency": "USD",
            "responseCode": "2001",
        })

        self.assertEqual(data.reference_id, "ORD-1")
        self.assertEqual(data.state, "APPROVED")
        self.assertEqual(data.amount, Decimal("29.90"))
        self.assertTrue(data.is_approved)
        self.assertFalse(data.is_pending)

    def test_parse_empty_payload(self):
        data = WaafiPayClient.parse_callback({})
        self.assertIsNone(data.reference_id)
        self.assertIsNone(data.state)
        self.assertFalse(data.is_approved)
