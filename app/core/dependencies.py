"""
Core dependencies for route protection and resource access checks
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase, first_or_none
from app.modules.auth.service import AuthService
from supabase import Client
from typing import List, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

RESOURCE_TYPES = ("agent", "team", "task")


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def has_resource_access(resource_type: str, resource_id: str, user_id: str, supabase: Client) -> bool:
    """True if the resource was shared with the user through resource_access"""
    try:
        result = supabase.table("resource_access")\
            .select("id")\
            .eq("resource_type", resource_type)\
            .eq("resource_id", resource_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return bool(result.data)
    except Exception as e:
        logger.error(f"Error checking {resource_type} access: {e}")
        return False


def get_shared_resource_ids(resource_type: str, user_id: str, supabase: Client) -> List[str]:
    """Return ids of resources of the given type shared with the user"""
    try:
        result = supabase.table("resource_access")\
            .select("resource_id")\
            .eq("resource_type", resource_type)\
            .eq("user_id", user_id)\
            .execute()
        return [r["resource_id"] for r in result.data] if result.data else []
    except Exception as e:
        logger.error(f"Error getting shared {resource_type} ids: {e}")
        return []


def check_agent_access(agent_id: str, user_data: dict, supabase: Client) -> Dict[str, Any]:
    """Return the agent row if the user owns it or it was shared with them"""
    agent = first_or_none(
        supabase.table("agents")
        .select("*")
        .eq("id", agent_id)
        .eq("is_deleted", False)
        .limit(1)
        .execute()
    )
    if not agent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    if agent["user_id"] == user_data["id"]:
        return agent
    if has_resource_access("agent", agent_id, user_data["id"], supabase):
        return agent
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this agent"
    )


def _has_legacy_team_share(team_owner_id: str, user_id: str, supabase: Client) -> bool:
    """Approved share request on any agent owned by the team owner"""
    owner_agents = supabase.table("agents")\
        .select("id")\
        .eq("user_id", team_owner_id)\
        .execute()
    if not owner_agents.data:
        return False
    shared = supabase.table("share_requests")\
        .select("id")\
        .eq("resource_type", "agent")\
        .in_("resource_id", [a["id"] for a in owner_agents.data])\
        .eq("requester_user_id", user_id)\
        .eq("status", "approved")\
        .limit(1)\
        .execute()
    return bool(shared.data)


def check_team_access(team_id: str, user_data: dict, supabase: Client) -> Dict[str, Any]:
    """Return the team row if the user owns it, it was shared with them, or they hold an approved agent share from its owner"""
    team = first_or_none(
        supabase.table("teams")
        .select("*")
        .eq("id", team_id)
        .limit(1)
        .execute()
    )
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    user_id = user_data["id"]
    if team["user_id"] == user_id:
        return team
    if has_resource_access("team", team_id, user_id, supabase):
        return team
    if _has_legacy_team_share(team["user_id"], user_id, supabase):
        return team
    # Hidden rather than forbidden, matching how unshared teams are listed
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")


def check_team_owner(team_id: str, user_data: dict, supabase: Client) -> Dict[str, Any]:
    team = check_team_access(team_id, user_data, supabase)
    if team["user_id"] != user_data["id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the team owner can perform this action"
        )
    return team


def check_group_member(group_id: str, user_data: dict, supabase: Client) -> Dict[str, Any]:
    """Return the caller's membership row in a group"""
    member = first_or_none(
        supabase.table("group_members")
        .select("*")
        .eq("group_id", group_id)
        .eq("user_id", user_data["id"])
        .limit(1)
        .execute()
    )
    if not member:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You must be a member of this group"
        )
    return member


def check_group_owner(group_id: str, user_data: dict, supabase: Client) -> Dict[str, Any]:
    """Check if user is the owner of a group"""
    group = first_or_none(
        supabase.table("groups")
        .select("*")
        .eq("id", group_id)
        .limit(1)
        .execute()
    )
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    if group.get("user_id") == user_data["id"]:
        return group
    member = check_group_member(group_id, user_data, supabase)
    if member.get("role") == "owner":
        return group
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be the group owner to perform this action"
    )
