from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.conversations.schemas import (
    ConversationResponse, MessageCreate, MessageCreateResponse,
    FeedbackRequest, FeedbackResponse
)
from app.modules.conversations.service import ConversationService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/conversations", tags=["conversations"])


def get_conversation_service(supabase: Client = Depends(get_supabase)) -> ConversationService:
    return ConversationService(supabase)


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    """List conversations of owned and shared agents with their latest message"""
    return service.list_conversations(user_data["id"])


@router.get("/latest/{agent_id}", response_model=ConversationResponse)
async def get_latest_conversation(
    agent_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    return service.get_latest_for_agent(agent_id, user_data)


@router.post("/message", response_model=MessageCreateResponse, status_code=201)
async def add_message(
    message_data: MessageCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    """Store a message without generating a reply"""
    return service.add_message(message_data, user_data)


@router.post("/feedback", response_model=FeedbackResponse)
async def record_feedback(
    feedback_data: FeedbackRequest,
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    """Like (1), dislike (-1) or clear (0) a message"""
    return service.record_feedback(feedback_data, user_data)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    return service.get_conversation(conversation_id, user_data)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service)
):
    service.delete_conversation(conversation_id, user_data["id"])
    return None
