from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.saved_responses.schemas import (
    SavedResponseCreate, SavedResponseTargetUpdate, SavedResponseResponse
)
from app.modules.saved_responses.service import SavedResponseService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/saved-responses", tags=["saved-responses"])


def get_saved_response_service(supabase: Client = Depends(get_supabase)) -> SavedResponseService:
    return SavedResponseService(supabase)


@router.post("", response_model=SavedResponseResponse, status_code=201)
async def save_response(
    data: SavedResponseCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: SavedResponseService = Depends(get_saved_response_service)
):
    return service.save_response(data, user_data)


@router.get("", response_model=List[SavedResponseResponse])
async def list_saved_responses(
    target_agent_id: Optional[str] = Query(None),
    user_data: Dict = Depends(get_current_user_id),
    service: SavedResponseService = Depends(get_saved_response_service)
):
    """List the user's saved responses, optionally for one target agent"""
    return service.list_responses(user_data["id"], target_agent_id)


@router.get("/{response_id}", response_model=SavedResponseResponse)
async def get_saved_response(
    response_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: SavedResponseService = Depends(get_saved_response_service)
):
    return service.get_response(response_id, user_data["id"])


@router.put("/{response_id}/target", response_model=SavedResponseResponse)
async def update_saved_response_target(
    response_id: str,
    data: SavedResponseTargetUpdate,
    user_data: Dict = Depends(get_current_user_id),
    service: SavedResponseService = Depends(get_saved_response_service)
):
    return service.update_target(response_id, data, user_data)


@router.delete("/{response_id}", status_code=204)
async def delete_saved_response(
    response_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: SavedResponseService = Depends(get_saved_response_service)
):
    service.delete_response(response_id, user_data["id"])
    return None
