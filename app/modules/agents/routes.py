from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.agents.schemas import (
    AgentCreate, AgentUpdate, AgentResponse,
    AgentTestRequest, AgentTestResponse, AgentChatRequest
)
from app.modules.agents.service import AgentService
from app.modules.uploads.storage import AttachmentStorage, get_attachment_storage
from app.core.dependencies import get_current_user_id, check_agent_access
from app.core.llm import LLMClient, get_llm_client
from app.core.sse import sse_response
from app.core.limiter import limiter
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/agents", tags=["agents"])


def get_agent_service(supabase: Client = Depends(get_supabase)) -> AgentService:
    return AgentService(supabase)


@router.post("", response_model=AgentResponse, status_code=201)
async def create_agent(
    agent_data: AgentCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service)
):
    """Create a new agent"""
    return service.create_agent(agent_data, user_data["id"])


@router.get("", response_model=List[AgentResponse])
async def list_agents(
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service)
):
    """List the current user's agents with live metrics"""
    return service.list_agents(user_data["id"])


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(
    agent_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service)
):
    """Get agent by ID (owner or shared)"""
    return service.get_agent(agent_id, user_data)


@router.put("/{agent_id}", response_model=AgentResponse)
async def update_agent(
    agent_id: str,
    agent_data: AgentUpdate,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service)
):
    return service.update_agent(agent_id, agent_data, user_data)


@router.delete("/{agent_id}", status_code=204)
async def delete_agent(
    agent_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service)
):
    """Soft delete agent"""
    service.delete_agent(agent_id, user_data)
    return None


@router.post("/{agent_id}/test", response_model=AgentTestResponse)
async def test_agent(
    agent_id: str,
    test_request: AgentTestRequest,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service),
    supabase: Client = Depends(get_supabase),
    llm: LLMClient = Depends(get_llm_client)
):
    """Send one message to the agent without storing it"""
    agent = check_agent_access(agent_id, user_data, supabase)
    return service.test_agent(agent, test_request.message, llm)


@router.post("/{agent_id}/chat")
@limiter.exempt
async def chat_with_agent(
    agent_id: str,
    chat_request: AgentChatRequest,
    user_data: Dict = Depends(get_current_user_id),
    service: AgentService = Depends(get_agent_service),
    supabase: Client = Depends(get_supabase),
    llm: LLMClient = Depends(get_llm_client),
    storage: AttachmentStorage = Depends(get_attachment_storage)
):
    """Stream the agent's reply as Server-Sent Events"""
    agent = check_agent_access(agent_id, user_data, supabase)
    service.check_conversation(agent, chat_request.conversation_id)
    return sse_response(service.stream_chat(agent, chat_request, user_data["id"], llm, storage))
