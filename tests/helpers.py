import hashlib
import hmac
import json
import time
from typing import Dict, Optional

import httpx
from sqlalchemy import func, select

from src.config.constants import PaymentGateway, PaymentStatus
from src.database.models.enrollment import Enrollment
from src.database.models.payment import Payment
from tests.constants import COURSE_ID, MERCADOPAGO_SECRET, STRIPE_SECRET, USER_ID


def hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def mercadopago_headers(
    data_id: str,
    secret: str = MERCADOPAGO_SECRET,
    request_id: str = "req-abc-1",
    ts: str = "1700000000",
) -> Dict[str, str]:
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};".encode("utf-8")
    return {
        "x-signature": f"ts={ts},v1={hmac_hex(secret, manifest)}",
        "x-request-id": request_id,
        "content-type": "application/json",
    }


def mercadopago_body(data_id: str, event_type: str = "payment") -> bytes:
    return json.dumps(
        {"action": "payment.updated", "data": {"id": data_id}, "type": event_type},
        separators=(",", ":"),
    ).encode("utf-8")


def stripe_headers(
    body: bytes, secret: str = STRIPE_SECRET, timestamp: Optional[int] = None
) -> Dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    signature = hmac_hex(secret, f"{ts}.".encode("utf-8") + body)
    return {"stripe-signature": f"t={ts},v1={signature}", "content-type": "application/json"}


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    return json.dumps(
        {"id": event_id, "type": event_type, "data": {"object": obj}}
    ).encode("utf-8")


async def seed_payment(
    database,
    external_payment_id: Optional[str] = "123456",
    gateway: PaymentGateway = PaymentGateway.MERCADOPAGO,
    status: PaymentStatus = PaymentStatus.PENDING,
    user_id: str = USER_ID,
    course_id: str = COURSE_ID,
    external_reference: Optional[str] = None,
) -> Payment:
    payment = Payment(
        user_id=user_id,
        course_id=course_id,
        gateway=gateway.value,
        external_payment_id=external_payment_id,
        external_reference=external_reference,
        status=status.value,
    )
    async with database.session() as session:
        async with session.begin():
            session.add(payment)
    return payment


async def get_payment(database, payment_id: str) -> Payment:
    async with database.session() as session:
        return await session.get(Payment, payment_id)


async def count_enrollments(database, user_id: str = USER_ID, course_id: str = COURSE_ID) -> int:
    async with database.session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(Enrollment)
            .where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        )
        return result.scalar_one()


async def count_payments(database) -> int:
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(Payment))
        return result.scalar_one()


class FakeMercadoPagoAPI:
    """In-memory stand-in for GET /v1/payments/{id}."""

    def __init__(self):
        self.payments: Dict[str, dict] = {}
        self.fail_with_status: Optional[int] = None
        self.unreachable = False
        self.requests = []

    def add_payment(self, payment_id: str, status: str, external_reference: Optional[str] = None):
        self.payments[payment_id] = {
            "id": int(payment_id) if payment_id.isdigit() else payment_id,
            "status": status,
            "status_detail": "accredited" if status == "approved" else status,
            "external_reference": external_reference,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with_status:
            return httpx.Response(self.fail_with_status, json={"message": "error"})
        payment_id = request.url.path.rsplit("/", 1)[-1]
        if payment_id not in self.payments:
            return httpx.Response(404, json={"message": "Payment not found"})
        return httpx.Response(200, json=self.payments[payment_id])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeSubscriberEndpoint:
    """Records outbound webhook deliveries."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
