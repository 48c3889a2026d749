"""Push registration API endpoints."""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, Response, status

from ..schemas.registration import (
    EndpointAssignmentResponse,
    PushRegistration,
    RegistrationRecord,
)
from ..services.registration_store import ReadConsistency, RegistrationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/push", tags=["push"])


def get_store(request: Request) -> RegistrationStore:
    """Dependency returning the store opened by the application lifespan."""
    return request.app.state.registration_store


async def get_auth_id(x_auth_id: Optional[str] = Header(None)) -> str:
    """Identity of the caller, set by the upstream authentication layer."""
    if not x_auth_id:
        raise HTTPException(status_code=401, detail="Bearer token is missing or not authorized")
    return x_auth_id


@router.post("/registration", response_model=RegistrationRecord)
async def register(
    registration: PushRegistration,
    response: Response,
    auth_id: str = Depends(get_auth_id),
    store: RegistrationStore = Depends(get_store),
):
    """Register a push token for the caller.

    Calling again with the same token refreshes the registration and replaces
    the device info when one is supplied.
    """
    result = await store.save(registration, auth_id)
    response.status_code = status.HTTP_201_CREATED if result.inserted else status.HTTP_200_OK
    return result.record


@router.get("/registration", response_model=List[RegistrationRecord])
async def list_registrations(
    consistency: ReadConsistency = ReadConsistency.EVENTUAL,
    auth_id: str = Depends(get_auth_id),
    store: RegistrationStore = Depends(get_store),
):
    """List the caller's registrations, most recently updated first."""
    return await store.find_by_auth_id(auth_id, consistency=consistency)


@router.delete("/registration/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def unregister(
    token: str,
    auth_id: str = Depends(get_auth_id),
    store: RegistrationStore = Depends(get_store),
):
    """Remove a registration by token.

    Deletion is not scoped to the caller: any authenticated identity can remove
    a registration for the token, including one saved under another auth id.
    """
    if not await store.remove_token(token):
        raise HTTPException(status_code=404, detail="Registration not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/endpoint/incomplete", response_model=List[RegistrationRecord])
async def incomplete_registrations(store: RegistrationStore = Depends(get_store)):
    """Claim and return registrations that still need a delivery endpoint.

    The returned endpoint values are batch markers, not delivery endpoints.
    """
    return await store.find_incomplete_registrations()


@router.post("/endpoint", response_model=EndpointAssignmentResponse)
async def assign_endpoints(
    endpoints: Dict[str, str] = Body(...),
    store: RegistrationStore = Depends(get_store),
):
    """Store resolved delivery endpoints, keyed by token."""
    if not endpoints:
        raise HTTPException(status_code=400, detail="No endpoints supplied")

    missing = []
    for token, endpoint in endpoints.items():
        if not await store.save_endpoint(token, endpoint):
            missing.append(token)

    if missing:
        logger.warning(f"Endpoints not saved for {len(missing)} unknown tokens")
    return EndpointAssignmentResponse(updated=len(endpoints) - len(missing), missing=missing)
