from sqlalchemy import delete

from src.api.enrollments.models import (
    EnrollmentResultSchema,
    EnrollmentStatusSchema,
    ExternalEnrollmentSchema,
)
from src.api.webhooks.repository import PaymentRepository
from src.config.constants import EnrollmentAction, EnrollmentSource
from src.database.connection import Database
from src.database.models.enrollment import Enrollment
from src.shared.error_handler import ErrorHandler, handle_service_errors


class EnrollmentService:
    """Direct enrollment by trusted external systems, outside the payment flow."""

    def __init__(self, database: Database):
        self.database = database
        self._error_handler = ErrorHandler(__name__)

    @handle_service_errors("applying external enrollment")
    async def apply(self, data: ExternalEnrollmentSchema) -> EnrollmentResultSchema:
        async with self.database.session() as session:
            async with session.begin():
                if data.action == EnrollmentAction.ENROLL:
                    changed = await PaymentRepository(session).insert_enrollment_if_absent(
                        data.user_id, data.course_id, source=EnrollmentSource.EXTERNAL
                    )
                else:
                    result = await session.execute(
                        delete(Enrollment).where(
                            Enrollment.user_id == data.user_id,
                            Enrollment.course_id == data.course_id,
                        )
                    )
                    changed = result.rowcount > 0

        self._error_handler.logger.info(
            f"External {data.action.value} user={data.user_id} course={data.course_id} "
            f"changed={changed}"
        )
        return EnrollmentResultSchema(
            user_id=data.user_id,
            course_id=data.course_id,
            action=data.action,
            changed=changed,
        )

    @handle_service_errors("checking enrollment")
    async def check(self, user_id: str, course_id: str) -> EnrollmentStatusSchema:
        async with self.database.session() as session:
            enrollment = await PaymentRepository(session).get_enrollment(user_id, course_id)

        if enrollment is None:
            return EnrollmentStatusSchema(user_id=user_id, course_id=course_id, status="none")
        return EnrollmentStatusSchema(
            user_id=user_id,
            course_id=course_id,
            status="active",
            enrolled_at=enrollment.enrolled_at,
            source=enrollment.source,
        )
