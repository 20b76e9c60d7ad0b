"""Audit event response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any
from uuid import UUID

from pydantic import BaseModel


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[UUID]
    tenant_id: Optional[UUID]
    actor_user_id: Optional[UUID]
    action: str
    resource_type: Optional[str]
    resource_id: Optional[str]
    payload: Dict[str, Any] = {}
    created_at: Optional[datetime]
