from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, List
import logging

from app.core.dependencies import check_agent_access, check_team_access, check_team_owner
from app.database.supabase_client import first_or_none
from app.modules.agents.schemas import AgentSummary
from app.modules.agents.service import utc_now
from app.modules.teams.schemas import (
    TeamCreate, TeamUpdate, TeamResponse, TeamMemberAdd, TeamMemberResponse
)

logger = logging.getLogger(__name__)


def order_members(members: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Primary agent first, then by the time members were added"""
    return sorted(members, key=lambda m: (not m.get("is_primary_agent"), str(m.get("added_at") or "")))


class TeamService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_member_rows(self, team_id: str) -> List[Dict[str, Any]]:
        """Member rows with their agent row attached under "agent", in execution order"""
        result = self.supabase.table("team_members")\
            .select("*")\
            .eq("team_id", team_id)\
            .execute()
        members = order_members(result.data or [])
        agent_ids = [m["agent_id"] for m in members]
        agents = {}
        if agent_ids:
            agents_result = self.supabase.table("agents")\
                .select("*")\
                .in_("id", agent_ids)\
                .execute()
            agents = {a["id"]: a for a in agents_result.data or []}
        for member in members:
            member["agent"] = agents.get(member["agent_id"])
        return members

    def _to_response(self, team: Dict[str, Any], user_id: str) -> TeamResponse:
        members = []
        for row in self.get_member_rows(team["id"]):
            agent = row.pop("agent", None)
            members.append(TeamMemberResponse(**row, agent=AgentSummary(**agent) if agent else None))
        return TeamResponse(**team, members=members, is_owner=team["user_id"] == user_id)

    def _clear_primary(self, team_id: str):
        self.supabase.table("team_members")\
            .update({"is_primary_agent": False})\
            .eq("team_id", team_id)\
            .execute()

    def create_team(self, team_data: TeamCreate, user_data: dict) -> TeamResponse:
        """Create a team and its members; only the first primary flag is kept"""
        for member in team_data.members:
            check_agent_access(member.agent_id, user_data, self.supabase)
        try:
            result = self.supabase.table("teams").insert({
                "user_id": user_data["id"],
                "name": team_data.name,
                "description": team_data.description,
                "objective": team_data.objective,
                "status": "ACTIVE",
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create team")
            team = result.data[0]

            primary_seen = False
            seen_agents = set()
            for member in team_data.members:
                if member.agent_id in seen_agents:
                    continue
                seen_agents.add(member.agent_id)
                is_primary = member.is_primary_agent and not primary_seen
                primary_seen = primary_seen or is_primary
                self.supabase.table("team_members").insert({
                    "team_id": team["id"],
                    "agent_id": member.agent_id,
                    "role": member.role,
                    "is_primary_agent": is_primary,
                }).execute()

            logger.info(f"Team created: {team['id']} with {len(seen_agents)} members")
            return self._to_response(team, user_data["id"])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_teams(self, user_id: str) -> List[TeamResponse]:
        """List the user's active teams"""
        try:
            result = self.supabase.table("teams")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("status", "ACTIVE")\
                .order("created_at", desc=True)\
                .execute()
            return [self._to_response(team, user_id) for team in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_team(self, team_id: str, user_data: dict) -> TeamResponse:
        team = check_team_access(team_id, user_data, self.supabase)
        return self._to_response(team, user_data["id"])

    def update_team(self, team_id: str, team_data: TeamUpdate, user_data: dict) -> TeamResponse:
        """Update team (owner only)"""
        team = check_team_owner(team_id, user_data, self.supabase)
        update_data = team_data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            return self._to_response(team, user_data["id"])
        update_data["updated_at"] = utc_now()
        try:
            result = self.supabase.table("teams")\
                .update(update_data)\
                .eq("id", team_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Team not found")
            return self._to_response(result.data[0], user_data["id"])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_team(self, team_id: str, user_data: dict) -> TeamResponse:
        """Archive the team; team rows are never hard-deleted"""
        check_team_owner(team_id, user_data, self.supabase)
        try:
            result = self.supabase.table("teams")\
                .update({"status": "ARCHIVED", "updated_at": utc_now()})\
                .eq("id", team_id)\
                .execute()
            logger.info(f"Team archived: {team_id}")
            return self._to_response(result.data[0], user_data["id"])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def add_member(self, team_id: str, member_data: TeamMemberAdd, user_data: dict) -> TeamMemberResponse:
        check_team_owner(team_id, user_data, self.supabase)
        agent = check_agent_access(member_data.agent_id, user_data, self.supabase)
        existing = self.supabase.table("team_members")\
            .select("id")\
            .eq("team_id", team_id)\
            .eq("agent_id", member_data.agent_id)\
            .execute()
        if existing.data:
            raise HTTPException(status_code=400, detail="Agent is already a member of this team")
        try:
            if member_data.is_primary_agent:
                self._clear_primary(team_id)
            result = self.supabase.table("team_members").insert({
                "team_id": team_id,
                "agent_id": member_data.agent_id,
                "role": member_data.role,
                "is_primary_agent": member_data.is_primary_agent,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to add member")
            return TeamMemberResponse(**result.data[0], agent=AgentSummary(**agent))
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def remove_member(self, team_id: str, member_id: str, user_data: dict) -> bool:
        check_team_owner(team_id, user_data, self.supabase)
        member = first_or_none(
            self.supabase.table("team_members")
            .select("id")
            .eq("id", member_id)
            .eq("team_id", team_id)
            .limit(1)
            .execute()
        )
        if not member:
            raise HTTPException(status_code=404, detail="Team member not found")
        result = self.supabase.table("team_members")\
            .delete()\
            .eq("id", member_id)\
            .execute()
        return len(result.data) > 0
