"""Pydantic schemas for API request/response models."""
from .registration import (
    NativeOS,
    Device,
    PushRegistration,
    RegistrationRecord,
    EndpointAssignmentResponse,
)

__all__ = [
    "NativeOS",
    "Device",
    "PushRegistration",
    "RegistrationRecord",
    "EndpointAssignmentResponse",
]
