"""
Storage operations the reconciler relies on: lookup by external id or
reference, conditional status update, and conflict-free inserts of payment
attempts and enrollments.

All methods run inside the caller's session and transaction.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import EnrollmentSource, PaymentStatus
from src.database.models.enrollment import Enrollment
from src.database.models.payment import Payment
from src.shared.utils import utcnow


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_external_id(
        self, gateway: str, external_payment_id: str
    ) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(
                Payment.gateway == gateway,
                Payment.external_payment_id == external_payment_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_reference(
        self, gateway: str, external_reference: str
    ) -> Optional[Payment]:
        """
        The checkout record behind ``external_reference``: the one still
        waiting for its gateway payment id if there is one, otherwise the
        latest attempt.
        """
        stmt = (
            select(Payment)
            .where(
                Payment.gateway == gateway,
                Payment.external_reference == external_reference,
            )
            .order_by(Payment.external_payment_id.is_not(None), Payment.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_external_payment_id(self, payment_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(Payment.external_payment_id).where(Payment.id == payment_id)
        )
        return result.scalar_one_or_none()

    async def insert_attempt_if_absent(
        self, checkout: Payment, external_payment_id: str
    ) -> Payment:
        """
        Register another gateway payment for the same checkout (a card retry
        after a rejection, for instance) as its own pending record.

        Concurrent callers for the same gateway payment get the same row.
        """
        now = utcnow()
        await self._insert_ignoring_conflict(
            Payment,
            {
                "id": str(uuid.uuid4()),
                "user_id": checkout.user_id,
                "course_id": checkout.course_id,
                "gateway": checkout.gateway,
                "external_payment_id": external_payment_id,
                "external_reference": checkout.external_reference,
                "amount": checkout.amount,
                "currency": checkout.currency,
                "status": PaymentStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            },
            ["gateway", "external_payment_id"],
        )
        return await self.get_by_external_id(checkout.gateway, external_payment_id)

    async def get_status(self, payment_id: str) -> Optional[PaymentStatus]:
        result = await self.session.execute(
            select(Payment.status).where(Payment.id == payment_id)
        )
        status = result.scalar_one_or_none()
        return PaymentStatus(status) if status else None

    async def transition_status(
        self,
        payment_id: str,
        new_status: PaymentStatus,
        gateway_status: Optional[str],
        external_payment_id: str,
    ) -> bool:
        """
        Move a payment out of ``pending`` with one conditional UPDATE.

        Returns True only for the single caller whose update matched; every
        concurrent or later caller sees a row count of zero.
        """
        stmt = (
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                gateway_status=gateway_status,
                external_payment_id=func.coalesce(
                    Payment.external_payment_id, external_payment_id
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def insert_enrollment_if_absent(
        self,
        user_id: str,
        course_id: str,
        source: EnrollmentSource = EnrollmentSource.PAYMENT,
        reference: Optional[str] = None,
    ) -> bool:
        """Returns True when a new enrollment row was written."""
        return await self._insert_ignoring_conflict(
            Enrollment,
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "course_id": course_id,
                "source": source.value,
                "reference": reference,
                "enrolled_at": utcnow(),
            },
            ["user_id", "course_id"],
        )

    async def _insert_ignoring_conflict(
        self, model, values: Dict[str, Any], unique_columns: List[str]
    ) -> bool:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(model).values(**values).on_conflict_do_nothing(
                index_elements=unique_columns
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing(
                index_elements=unique_columns
            )
        else:
            try:
                async with self.session.begin_nested():
                    self.session.add(model(**values))
                return True
            except IntegrityError:
                return False

        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_enrollment(self, user_id: str, course_id: str) -> Optional[Enrollment]:
        result = await self.session.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id, Enrollment.course_id == course_id
            )
        )
        return result.scalar_one_or_none()
