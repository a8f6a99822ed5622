from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.enrollments.models import (
    EnrollmentCheckSchema,
    EnrollmentResultSchema,
    EnrollmentStatusSchema,
    ExternalEnrollmentSchema,
)
from src.api.enrollments.service import EnrollmentService
from src.database.connection import Database
from src.dependencies.auth import require_external_token
from src.dependencies.services import get_database
from src.shared.responses import success_response

enrollments_router = APIRouter(
    prefix="/external",
    tags=["External Enrollment"],
    dependencies=[Depends(require_external_token)],
)


def get_enrollment_service(
    database: Annotated[Database, Depends(get_database)],
) -> EnrollmentService:
    return EnrollmentService(database)


@enrollments_router.post("/enroll", response_model=EnrollmentResultSchema)
async def external_enroll(
    data: ExternalEnrollmentSchema,
    enrollment_service: Annotated[EnrollmentService, Depends(get_enrollment_service)],
):
    """Enroll or unenroll a user on behalf of a partner system."""
    result = await enrollment_service.apply(data)
    return success_response(result.model_dump(mode="json"))


@enrollments_router.post("/check-enrollment", response_model=EnrollmentStatusSchema)
async def check_enrollment(
    data: EnrollmentCheckSchema,
    enrollment_service: Annotated[EnrollmentService, Depends(get_enrollment_service)],
):
    result = await enrollment_service.check(data.user_id, data.course_id)
    return success_response(result.model_dump(mode="json"))
