from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.config.constants import EnrollmentAction


class ExternalEnrollmentSchema(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    course_id: str = Field(..., min_length=1, max_length=255)
    action: EnrollmentAction = EnrollmentAction.ENROLL


class EnrollmentCheckSchema(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    course_id: str = Field(..., min_length=1, max_length=255)


class EnrollmentResultSchema(BaseModel):
    user_id: str
    course_id: str
    action: EnrollmentAction
    changed: bool


class EnrollmentStatusSchema(BaseModel):
    user_id: str
    course_id: str
    status: str  # active, none
    enrolled_at: Optional[datetime] = None
    source: Optional[str] = None
