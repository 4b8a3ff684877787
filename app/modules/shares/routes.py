from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.shares.schemas import ShareRequestCreate, ShareRequestResponse, SharedResourceResponse
from app.modules.shares.service import ShareService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/share-requests", tags=["shares"])
resources_router = APIRouter(prefix="/shared-resources", tags=["shares"])


def get_share_service(supabase: Client = Depends(get_supabase)) -> ShareService:
    return ShareService(supabase)


@router.post("", response_model=ShareRequestResponse, status_code=201)
async def create_share_request(
    request: ShareRequestCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    """Request access to another user's agent, team or task"""
    return service.create_request(request, user_data["id"])


@router.get("/incoming", response_model=List[ShareRequestResponse])
async def list_incoming_requests(
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    """Requests waiting on the current user's resources"""
    return service.list_incoming(user_data["id"])


@router.get("/outgoing", response_model=List[ShareRequestResponse])
async def list_outgoing_requests(
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    return service.list_outgoing(user_data["id"])


@router.post("/{request_id}/approve", response_model=ShareRequestResponse)
async def approve_share_request(
    request_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    return service.approve_request(request_id, user_data["id"])


@router.post("/{request_id}/reject", response_model=ShareRequestResponse)
async def reject_share_request(
    request_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    return service.reject_request(request_id, user_data["id"])


@resources_router.get("", response_model=List[SharedResourceResponse])
async def list_shared_resources(
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    """Resources other users have shared with the current user"""
    return service.list_shared_with_me(user_data["id"])


@resources_router.delete("/{access_id}", status_code=204)
async def revoke_shared_resource(
    access_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ShareService = Depends(get_share_service)
):
    service.revoke_access(access_id, user_data["id"])
    return None
