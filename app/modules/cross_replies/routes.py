from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.cross_replies.schemas import (
    CrossReplyCreate, CrossReplyResponseCreate, CrossReplyResponse
)
from app.modules.cross_replies.service import CrossReplyService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

# Must be included before the agents router
router = APIRouter(prefix="/agents/cross-replies", tags=["cross-replies"])


def get_cross_reply_service(supabase: Client = Depends(get_supabase)) -> CrossReplyService:
    return CrossReplyService(supabase)


@router.post("", response_model=CrossReplyResponse, status_code=201)
async def create_cross_reply(
    data: CrossReplyCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: CrossReplyService = Depends(get_cross_reply_service)
):
    """Start a session asking other agents the same question"""
    return service.create_cross_reply(data, user_data)


@router.get("", response_model=List[CrossReplyResponse])
async def list_cross_replies(
    user_data: Dict = Depends(get_current_user_id),
    service: CrossReplyService = Depends(get_cross_reply_service)
):
    return service.list_cross_replies(user_data["id"])


@router.get("/{cross_reply_id}", response_model=CrossReplyResponse)
async def get_cross_reply(
    cross_reply_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: CrossReplyService = Depends(get_cross_reply_service)
):
    return service.get_cross_reply(cross_reply_id, user_data["id"])


@router.post("/{cross_reply_id}/responses", response_model=CrossReplyResponse, status_code=201)
async def add_cross_reply_response(
    cross_reply_id: str,
    data: CrossReplyResponseCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: CrossReplyService = Depends(get_cross_reply_service)
):
    """Record another agent's answer to the session question"""
    return service.add_response(cross_reply_id, data, user_data)


@router.delete("/{cross_reply_id}", status_code=204)
async def delete_cross_reply(
    cross_reply_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: CrossReplyService = Depends(get_cross_reply_service)
):
    service.delete_cross_reply(cross_reply_id, user_data["id"])
    return None
