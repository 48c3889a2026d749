"""Registration schemas for API and store results."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class NativeOS(str, Enum):
    """Operating system reported by the device."""
    android = "android"
    ios = "ios"
    windows = "windows"
    unknown = "unknown"


class Device(BaseModel):
    """Device metadata reported alongside a push token."""
    os: NativeOS
    os_version: str = Field(..., alias="osVersion")
    app_version: str = Field(..., alias="appVersion")
    model: str

    class Config:
        populate_by_name = True


class PushRegistration(BaseModel):
    """Schema for a registration request.

    ``endpoint`` is accepted so that the store can reject it explicitly.
    """
    token: str = Field(..., min_length=1)
    device: Optional[Device] = None
    endpoint: Optional[str] = None


class RegistrationRecord(BaseModel):
    """A persisted registration."""
    id: str
    token: str
    auth_id: str = Field(..., alias="authId")
    device: Optional[Device] = None
    endpoint: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        populate_by_name = True

    @classmethod
    def from_row(cls, row) -> "RegistrationRecord":
        device = None
        if row.device_os is not None:
            device = Device(
                os=row.device_os,
                os_version=row.device_os_version,
                app_version=row.device_app_version,
                model=row.device_model,
            )
        return cls(
            id=row.id,
            token=row.token,
            auth_id=row.auth_id,
            device=device,
            endpoint=row.endpoint,
            created=row.created,
            updated=row.updated,
        )


class EndpointAssignmentResponse(BaseModel):
    """Outcome of assigning endpoints."""
    updated: int
    missing: List[str] = []
