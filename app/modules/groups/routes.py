from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupMemberResponse, GroupRoleResponse,
    GroupMessageCreate, GroupMessageResponse, GroupAgentAdd, GroupAgentResponse,
    GroupAgentChatRequest, GroupAgentMessageResponse
)
from app.modules.groups.service import GroupService
from app.core.dependencies import (
    get_current_user_id, check_agent_access, check_group_member, check_group_owner
)
from app.core.llm import LLMClient, get_llm_client
from app.core.sse import sse_response
from app.core.limiter import limiter
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(supabase: Client = Depends(get_supabase)) -> GroupService:
    return GroupService(supabase)


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Create a group; the creator becomes its owner"""
    return service.create_group(group_data, user_data["id"])


@router.get("", response_model=List[GroupResponse])
async def list_my_groups(
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """List groups the user belongs to"""
    return service.list_my_groups(user_data["id"])


@router.get("/remaining", response_model=List[GroupResponse])
async def list_remaining_groups(
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """List groups the user can still join"""
    return service.list_remaining_groups(user_data["id"])


@router.post("/{group_id}/join", response_model=GroupMemberResponse, status_code=201)
async def join_group(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.join_group(group_id, user_data["id"])


@router.get("/{group_id}/role", response_model=GroupRoleResponse)
async def get_group_role(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    return service.get_role(group_id, user_data["id"])


@router.put("/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    group_data: GroupUpdate,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Update group (owner only)"""
    group = check_group_owner(group_id, user_data, supabase)
    return service.update_group(group, group_data)


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Delete group (owner only)"""
    check_group_owner(group_id, user_data, supabase)
    service.delete_group(group_id)
    return None


@router.get("/{group_id}/messages", response_model=List[GroupMessageResponse])
async def list_group_messages(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    check_group_member(group_id, user_data, supabase)
    return service.list_messages(group_id)


@router.post("/{group_id}/messages", response_model=GroupMessageResponse, status_code=201)
async def post_group_message(
    group_id: str,
    message: GroupMessageCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Post a message to the group chat"""
    check_group_member(group_id, user_data, supabase)
    return service.post_message(group_id, user_data["id"], message)


@router.post("/{group_id}/agents", response_model=GroupAgentResponse, status_code=201)
async def add_group_agent(
    group_id: str,
    agent_data: GroupAgentAdd,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Add one of the caller's accessible agents to the group"""
    check_group_member(group_id, user_data, supabase)
    agent = check_agent_access(agent_data.agent_id, user_data, supabase)
    return service.add_agent(group_id, agent, user_data["id"])


@router.get("/{group_id}/agents", response_model=List[GroupAgentResponse])
async def list_group_agents(
    group_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    check_group_member(group_id, user_data, supabase)
    return service.list_agents(group_id)


@router.post("/{group_id}/agents/{agent_id}/send", response_model=GroupMessageResponse, status_code=201)
async def send_to_group_agent(
    group_id: str,
    agent_id: str,
    message: GroupMessageCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    """Store a message addressed to the group's agents without asking for a reply"""
    check_group_member(group_id, user_data, supabase)
    service.require_group_agent(group_id, agent_id)
    return service.post_message(group_id, user_data["id"], message, role="agent")


@router.post("/{group_id}/agents/{agent_id}/chat")
@limiter.exempt
async def chat_with_group_agent(
    group_id: str,
    agent_id: str,
    chat_request: GroupAgentChatRequest,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase),
    llm: LLMClient = Depends(get_llm_client)
):
    """Stream a group agent's reply as Server-Sent Events"""
    check_group_member(group_id, user_data, supabase)
    agent = service.get_group_agent(group_id, agent_id)
    return sse_response(
        service.stream_agent_chat(group_id, agent, user_data["id"], chat_request.message, llm)
    )


@router.get("/{group_id}/agents/{agent_id}/history", response_model=List[GroupAgentMessageResponse])
async def group_agent_history(
    group_id: str,
    agent_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
    supabase: Client = Depends(get_supabase)
):
    check_group_member(group_id, user_data, supabase)
    service.require_group_agent(group_id, agent_id)
    return service.agent_history(group_id, agent_id)
