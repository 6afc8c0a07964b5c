import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from bazaar_jobs.models.enums import DeletionRequestStatus


class DeletionRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    status: DeletionRequestStatus
    anonymize_contributions: bool
    requested_at: datetime
    scheduled_for: datetime
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None


class DeletionStatus(BaseModel):
    has_pending_deletion: bool
    requested_at: datetime | None = None
    scheduled_for: datetime | None = None
    days_remaining: int | None = None
    anonymize_contributions: bool | None = None
