"""
Tests for the Paystack client and the payment routes.
"""
import hashlib
import hmac
import json
import logging
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from ofi_orders.clients import paystack_client
from ofi_orders.errors import GatewayError, GatewayTimeout
from ofi_orders.payments import generate_reference

SECRET = "sk_test_secret"


def sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


def gateway_transaction(order_id, reference="ofi_ref_1", status="success", amount=5278000):
    return {
        "reference": reference,
        "status": status,
        "amount": amount,
        "currency": "NGN",
        "channel": "card",
        "paid_at": "2024-05-01T10:00:00.000Z",
        "metadata": {"order_id": order_id},
    }


@pytest.fixture
def gateway(monkeypatch):
    """Route the Paystack client through an httpx mock transport."""
    requests = []
    responses = {}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        reply = responses[request.url.path]
        if isinstance(reply, Exception):
            raise reply
        return httpx.Response(200, json=reply)

    def client(timeout):
        return httpx.AsyncClient(
            base_url=paystack_client.PAYSTACK_BASE_URL,
            timeout=timeout,
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(paystack_client, "_client", client)
    return requests, responses


@pytest.fixture
def order(client, order_data):
    response = client.post("/orders", json=order_data())
    assert response.status_code == 201, response.text
    return response.json()


class TestPaystackClient:
    """Tests for the gateway HTTP client."""

    @pytest.mark.asyncio
    async def test_initialize_sends_minor_units(self, gateway):
        """Test that naira amounts are sent as kobo with the secret key."""
        requests, responses = gateway
        responses["/transaction/initialize"] = {
            "status": True,
            "data": {"reference": "ofi_ref_1", "authorization_url": "https://checkout/x", "access_code": "x"},
        }

        session = await paystack_client.initialize_transaction(
            email="ada@example.com", amount=Decimal("52780"), reference="ofi_ref_1", metadata={"order_id": 1},
        )

        assert session == {"reference": "ofi_ref_1", "authorization_url": "https://checkout/x", "access_code": "x"}
        payload = json.loads(requests[0].content)
        assert payload["amount"] == 5278000
        assert payload["metadata"] == {"order_id": 1}
        assert requests[0].headers["Authorization"] == f"Bearer {SECRET}"

    @pytest.mark.asyncio
    async def test_initialize_refused(self, gateway):
        """Test that status false from the gateway raises GatewayError."""
        _, responses = gateway
        responses["/transaction/initialize"] = {"status": False, "message": "Invalid key"}

        with pytest.raises(GatewayError, match="Invalid key"):
            await paystack_client.initialize_transaction("ada@example.com", 100, "ofi_ref_1")

    @pytest.mark.asyncio
    async def test_verify_returns_transaction_data(self, gateway):
        """Test a successful verification."""
        requests, responses = gateway
        responses["/transaction/verify/ofi_ref_1"] = {"status": True, "data": gateway_transaction(1)}

        data = await paystack_client.verify_transaction("ofi_ref_1")

        assert data["status"] == "success"
        assert requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_verify_timeout(self, gateway):
        """Test that a gateway timeout is reported as GatewayTimeout."""
        _, responses = gateway
        responses["/transaction/verify/ofi_ref_1"] = httpx.ReadTimeout("timed out")

        with pytest.raises(GatewayTimeout):
            await paystack_client.verify_transaction("ofi_ref_1", timeout=0.1)

    @pytest.mark.asyncio
    async def test_verify_connection_error(self, gateway):
        """Test that transport failures other than timeouts are GatewayError."""
        _, responses = gateway
        responses["/transaction/verify/ofi_ref_1"] = httpx.ConnectError("refused")

        with pytest.raises(GatewayError) as exc_info:
            await paystack_client.verify_transaction("ofi_ref_1")

        assert not isinstance(exc_info.value, GatewayTimeout)

    @pytest.mark.asyncio
    async def test_verify_unexpected_shape(self, gateway):
        """Test that a reply without transaction data is rejected."""
        _, responses = gateway
        responses["/transaction/verify/ofi_ref_1"] = {"status": True, "data": []}

        with pytest.raises(GatewayError):
            await paystack_client.verify_transaction("ofi_ref_1")

    def test_signature(self):
        """Test webhook signature checking."""
        body = b'{"event":"charge.success"}'

        assert paystack_client.verify_signature(body, sign(body)) is True
        assert paystack_client.verify_signature(body + b" ", sign(body)) is False
        assert paystack_client.verify_signature(body, None) is False
        assert paystack_client.verify_signature(body, "\xe9abc") is False

    def test_minor_units(self):
        """Test naira/kobo conversion."""
        assert paystack_client.to_minor_units(Decimal("52780.005")) == 5278001
        assert paystack_client.from_minor_units(5278000) == Decimal("52780")

    def test_generated_reference_format(self):
        """Test the ofi_<millis>_<random> reference format."""
        prefix, millis, suffix = generate_reference().split("_")

        assert prefix == "ofi"
        assert millis.isdigit()
        assert len(suffix) == 9
        assert generate_reference() != generate_reference()


class TestInitializeRoute:
    """Tests for POST /payments/initialize."""

    def test_amount_defaults_to_checkout_amount(self, client, order, monkeypatch):
        """Test that an order's checkout amount is charged when no amount is given."""
        initialize = AsyncMock(return_value={
            "reference": "ofi_ref_1", "authorization_url": "https://checkout/x", "access_code": "x",
        })
        monkeypatch.setattr(paystack_client, "initialize_transaction", initialize)

        response = client.post("/payments/initialize", json={
            "email": "ada@example.com", "metadata": {"order_id": order["id"]},
        })

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["authorization_url"] == "https://checkout/x"
        kwargs = initialize.await_args.kwargs
        assert kwargs["amount"] == Decimal("52780")
        assert kwargs["reference"].startswith("ofi_")

    def test_amount_required_without_order(self, client, monkeypatch):
        """Test that an amount is needed when no order is referenced."""
        monkeypatch.setattr(paystack_client, "initialize_transaction", AsyncMock())

        response = client.post("/payments/initialize", json={"email": "ada@example.com"})

        assert response.status_code == 400
        assert response.json()["field"] == "amount"

    def test_unknown_order(self, client, monkeypatch, marketplace):
        """Test that metadata must reference an existing order."""
        monkeypatch.setattr(paystack_client, "initialize_transaction", AsyncMock())

        response = client.post("/payments/initialize", json={
            "email": "ada@example.com", "metadata": {"order_id": 9999},
        })

        assert response.status_code == 404

    def test_gateway_refusal(self, client, monkeypatch):
        """Test that a gateway error is a 502."""
        monkeypatch.setattr(
            paystack_client, "initialize_transaction",
            AsyncMock(side_effect=GatewayError("Invalid key")),
        )

        response = client.post("/payments/initialize", json={"email": "ada@example.com", "amount": "1000"})

        assert response.status_code == 502
        assert response.json()["code"] == "GATEWAY_ERROR"


class TestVerifyRoute:
    """Tests for GET /payments/verify/{reference}."""

    def test_successful_payment_is_settled(self, client, order, monkeypatch):
        """Test that commission is split from the order total, not the amount paid."""
        verify = AsyncMock(return_value=gateway_transaction(order["id"]))
        monkeypatch.setattr(paystack_client, "verify_transaction", verify)

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert float(body["data"]["amount"]) == 52780
        assert float(body["data"]["commission_amount"]) == 2600
        assert float(body["data"]["tailor_earnings"]) == 49400
        assert float(body["commission"]["base_amount"]) == 52000
        assert body["data"]["order_id"] == order["id"]

    def test_verification_is_idempotent(self, client, order, monkeypatch, marketplace):
        """Test that verifying a settled reference twice records one payment."""
        verify = AsyncMock(return_value=gateway_transaction(order["id"]))
        monkeypatch.setattr(paystack_client, "verify_transaction", verify)

        first = client.get("/payments/verify/ofi_ref_1").json()
        second = client.get("/payments/verify/ofi_ref_1").json()

        assert first["data"]["id"] == second["data"]["id"]
        assert verify.await_count == 1
        history = client.get(f"/payments/history/{marketplace['user'].id}").json()
        assert [payment["reference"] for payment in history] == ["ofi_ref_1"]

    def test_timeout_is_pending(self, client, monkeypatch):
        """Test that a verification timeout is pending, not failed."""
        monkeypatch.setattr(
            paystack_client, "verify_transaction",
            AsyncMock(side_effect=GatewayTimeout("timed out")),
        )

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 202
        assert response.json() == {
            "success": False, "status": "pending_verification", "data": None, "commission": None,
        }

    def test_unsuccessful_transaction(self, client, order, monkeypatch, marketplace):
        """Test that a failed transaction is a 400 and nothing is recorded."""
        monkeypatch.setattr(
            paystack_client, "verify_transaction",
            AsyncMock(return_value=gateway_transaction(order["id"], status="failed")),
        )

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 400
        assert response.json()["status"] == "failed"
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_metadata_without_order(self, client, monkeypatch):
        """Test that a transaction not tied to an order cannot be settled."""
        transaction = gateway_transaction(None)
        transaction["metadata"] = {}
        monkeypatch.setattr(paystack_client, "verify_transaction", AsyncMock(return_value=transaction))

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_metadata_as_json_string(self, client, order, monkeypatch):
        """Test that string-encoded metadata is understood."""
        transaction = gateway_transaction(order["id"])
        transaction["metadata"] = json.dumps({"order_id": order["id"]})
        monkeypatch.setattr(paystack_client, "verify_transaction", AsyncMock(return_value=transaction))

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 200
        assert response.json()["data"]["order_id"] == order["id"]

    def test_underpaid_transaction_is_not_settled(self, client, order, monkeypatch, marketplace):
        """Test that a charge below the checkout amount is a 400 and nothing is recorded."""
        monkeypatch.setattr(
            paystack_client, "verify_transaction",
            AsyncMock(return_value=gateway_transaction(order["id"], amount=100)),
        )

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["field"] == "amount"
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_order_total_without_fee_is_not_settled(self, client, order, monkeypatch, marketplace):
        """Test that paying the order total without the gateway fee is short."""
        monkeypatch.setattr(
            paystack_client, "verify_transaction",
            AsyncMock(return_value=gateway_transaction(order["id"], amount=5200000)),
        )

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 400
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_other_currency_is_not_settled(self, client, order, monkeypatch, marketplace):
        """Test that a charge in another currency is a 400."""
        transaction = gateway_transaction(order["id"])
        transaction["currency"] = "USD"
        monkeypatch.setattr(paystack_client, "verify_transaction", AsyncMock(return_value=transaction))

        response = client.get("/payments/verify/ofi_ref_1")

        assert response.status_code == 400
        assert response.json()["field"] == "currency"
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []


class TestWebhookRoute:
    """Tests for POST /payments/webhook."""

    def test_bad_signature_is_rejected(self, client, order, caplog, marketplace):
        """Test that an unsigned charge.success records nothing."""
        body = json.dumps({"event": "charge.success", "data": gateway_transaction(order["id"])}).encode()

        with caplog.at_level(logging.WARNING, logger="ofi_orders.security"):
            response = client.post(
                "/payments/webhook", content=body, headers={"x-paystack-signature": "forged"},
            )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"
        assert any(record.name == "ofi_orders.security" for record in caplog.records)
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_missing_signature_is_rejected(self, client):
        """Test that a webhook without a signature header is rejected."""
        response = client.post("/payments/webhook", content=b'{"event":"charge.success","data":{}}')

        assert response.status_code == 400

    def test_non_ascii_signature_is_rejected(self, client, order, marketplace):
        """Test that a signature header with non-ASCII bytes is a 400, not a crash."""
        body = json.dumps({"event": "charge.success", "data": gateway_transaction(order["id"])}).encode()

        response = client.post("/payments/webhook", content=body, headers={"x-paystack-signature": b"\xe9abc"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_underpaid_charge_is_acknowledged_not_settled(self, client, order, caplog, marketplace):
        """Test that a signed charge below the checkout amount records nothing."""
        body = json.dumps({
            "event": "charge.success", "data": gateway_transaction(order["id"], amount=100),
        }).encode()

        with caplog.at_level(logging.WARNING, logger="ofi_orders.payments"):
            response = client.post(
                "/payments/webhook", content=body, headers={"x-paystack-signature": sign(body)},
            )

        assert response.status_code == 200
        assert response.text == "OK"
        assert "not settled" in caplog.text
        assert client.get(f"/payments/history/{marketplace['user'].id}").json() == []

    def test_charge_success_records_settlement(self, client, order, marketplace):
        """Test that a signed charge.success is settled like a verification."""
        body = json.dumps({"event": "charge.success", "data": gateway_transaction(order["id"])}).encode()

        response = client.post("/payments/webhook", content=body, headers={"x-paystack-signature": sign(body)})

        assert response.status_code == 200
        assert response.text == "OK"
        history = client.get(f"/payments/history/{marketplace['user'].id}").json()
        assert len(history) == 1
        assert float(history[0]["commission_amount"]) == 2600

    def test_repeated_webhook_records_once(self, client, order, marketplace):
        """Test that gateway retries do not duplicate settlements."""
        body = json.dumps({"event": "charge.success", "data": gateway_transaction(order["id"])}).encode()
        headers = {"x-paystack-signature": sign(body)}

        client.post("/payments/webhook", content=body, headers=headers)
        client.post("/payments/webhook", content=body, headers=headers)

        assert len(client.get(f"/payments/history/{marketplace['user'].id}").json()) == 1

    def test_other_events_are_acknowledged(self, client):
        """Test that failed charges and unknown events are accepted."""
        for event in ("charge.failed", "transfer.success"):
            body = json.dumps({"event": event, "data": {"reference": "ofi_ref_2"}}).encode()

            response = client.post("/payments/webhook", content=body, headers={"x-paystack-signature": sign(body)})

            assert response.status_code == 200


class TestEarningsRoute:
    """Tests for GET /payments/earnings/{tailor_id}."""

    def test_earnings_over_completed_orders(self, client, order_data, marketplace):
        """Test that only completed orders count towards earnings."""
        tailor_id = marketplace["tailors"][0].id
        completed = client.post("/orders", json=order_data()).json()
        client.post("/orders", json=order_data())
        for status in ("measurements_verified", "in_progress", "quality_check", "shipped", "completed"):
            client.put(f"/orders/{completed['id']}/status", json={"status": status})

        body = client.get(f"/payments/earnings/{tailor_id}").json()

        assert body["total_orders"] == 1
        assert float(body["total_revenue"]) == 52000
        assert float(body["platform_commission"]) == 2600
        assert float(body["earnings"]) == 49400
        assert body["currency"] == "NGN"

    def test_unknown_tailor(self, client):
        """Test that earnings of an unknown tailor are a 404."""
        assert client.get("/payments/earnings/9999").status_code == 404
