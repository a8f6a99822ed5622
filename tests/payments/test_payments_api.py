import pytest

from src.config.constants import PaymentStatus
from tests.helpers import seed_payment

NEW_PAYMENT = {
    "user_id": "user-1",
    "course_id": "course-1",
    "gateway": "mercadopago",
    "external_payment_id": "123456",
    "amount": "199.90",
}


@pytest.mark.asyncio
class TestPaymentsAPI:
    async def test_register_checkout(self, external_client):
        response = await external_client.post("/payments", json=NEW_PAYMENT)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == PaymentStatus.PENDING.value
        assert data["gateway"] == "mercadopago"
        assert data["currency"] == "BRL"
        assert data["id"]

    async def test_register_with_reference_only(self, external_client):
        payload = {**NEW_PAYMENT, "external_payment_id": None, "external_reference": "order-1"}
        response = await external_client.post("/payments", json=payload)
        assert response.status_code == 201
        assert response.json()["data"]["external_reference"] == "order-1"

    async def test_identifier_is_required(self, external_client):
        payload = {k: v for k, v in NEW_PAYMENT.items() if k != "external_payment_id"}
        response = await external_client.post("/payments", json=payload)
        assert response.status_code == 422

    async def test_duplicate_external_id_conflicts(self, external_client):
        first = await external_client.post("/payments", json=NEW_PAYMENT)
        second = await external_client.post("/payments", json=NEW_PAYMENT)

        assert first.status_code == 201
        assert second.status_code == 409

    async def test_same_id_on_another_gateway_is_allowed(self, external_client):
        await external_client.post("/payments", json=NEW_PAYMENT)
        response = await external_client.post(
            "/payments", json={**NEW_PAYMENT, "gateway": "stripe"}
        )
        assert response.status_code == 201

    async def test_requires_token(self, client):
        response = await client.post("/payments", json=NEW_PAYMENT)
        assert response.status_code == 401

    async def test_rejects_wrong_token(self, client):
        response = await client.post(
            "/payments", json=NEW_PAYMENT, headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    async def test_payment_status(self, external_client, database):
        payment = await seed_payment(database, status=PaymentStatus.SUCCEEDED)

        response = await external_client.get(f"/payments/{payment.id}/status")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["payment_id"] == payment.id
        assert data["status"] == "succeeded"

    async def test_payment_status_not_found(self, external_client):
        response = await external_client.get("/payments/does-not-exist/status")
        assert response.status_code == 404
        assert response.json()["statusCode"] == 404

    async def test_gateway_configuration(self, client):
        response = await client.get("/payments/gateways")

        assert response.status_code == 200
        gateways = {g["gateway"]: g for g in response.json()["data"]}
        assert set(gateways) == {"mercadopago", "stripe"}
        assert gateways["mercadopago"]["has_webhook_secret"] is True
        assert gateways["stripe"]["environment"] == "test"
