from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.teams.schemas import (
    TeamCreate, TeamUpdate, TeamResponse, TeamMemberAdd, TeamMemberResponse
)
from app.modules.teams.service import TeamService
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/teams", tags=["teams"])


def get_team_service(supabase: Client = Depends(get_supabase)) -> TeamService:
    return TeamService(supabase)


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    team_data: TeamCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    """Create a team of agents"""
    return service.create_team(team_data, user_data)


@router.get("", response_model=List[TeamResponse])
async def list_teams(
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    """List the current user's active teams"""
    return service.list_teams(user_data["id"])


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    return service.get_team(team_id, user_data)


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: str,
    team_data: TeamUpdate,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    return service.update_team(team_id, team_data, user_data)


@router.delete("/{team_id}", response_model=TeamResponse)
async def delete_team(
    team_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    """Archive the team (soft delete)"""
    return service.delete_team(team_id, user_data)


@router.post("/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
async def add_member(
    team_id: str,
    member_data: TeamMemberAdd,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    return service.add_member(team_id, member_data, user_data)


@router.delete("/{team_id}/members/{member_id}", status_code=204)
async def remove_member(
    team_id: str,
    member_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service)
):
    service.remove_member(team_id, member_id, user_data)
    return None
