from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, List, Optional, Tuple
import logging

from app.config import settings
from app.core.dependencies import check_team_access, has_resource_access
from app.core.llm import LLMClient
from app.database.supabase_client import first_or_none
from app.modules.teams.service import TeamService
from app.modules.tasks import prompts
from app.modules.tasks.schemas import (
    TaskCreate, TaskVersionCreate, TaskResponse, TaskVersionsResponse,
    AssignmentResponse, ContributionResponse
)

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.team_service = TeamService(supabase)

    # Access

    def _get_task_row(self, task_id: str) -> Dict[str, Any]:
        task = first_or_none(
            self.supabase.table("collaborative_tasks")
            .select("*")
            .eq("id", task_id)
            .limit(1)
            .execute()
        )
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    def _get_team_row(self, team_id: str) -> Optional[Dict[str, Any]]:
        return first_or_none(
            self.supabase.table("teams")
            .select("*")
            .eq("id", team_id)
            .limit(1)
            .execute()
        )

    def check_task_access(self, team_id: str, task_id: str, user_data: dict) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        """Return (task, team) if the user created the task, it was shared with them, or they can see the team"""
        task = self._get_task_row(task_id)
        if task["team_id"] != team_id:
            raise HTTPException(status_code=404, detail="Task not found")
        user_id = user_data["id"]
        if task["user_id"] == user_id or has_resource_access("task", task_id, user_id, self.supabase):
            return task, self._get_team_row(team_id)
        team = check_team_access(team_id, user_data, self.supabase)
        return task, team

    # Decomposition

    def decompose(self, description: str, members: List[Dict[str, Any]], llm: LLMClient) -> List[Dict[str, str]]:
        """
        Ask the LLM for one subtask per member. Members the reply leaves out get a
        role-based default; any failure falls back to role-based subtasks for everyone.
        """
        profiles = []
        for member in members:
            agent = member.get("agent") or {}
            profiles.append({
                "agent_id": member["agent_id"],
                "name": agent.get("name") or "Agent",
                "role": member["role"],
                "type": agent.get("type") or "assistant",
                "is_primary": bool(member.get("is_primary_agent")),
            })
        try:
            result = llm.complete_with_fallback(
                [{"role": "user", "content": prompts.decomposition_prompt(description, profiles)}],
                model=settings.default_model,
                fallback_model=settings.fallback_model,
                temperature=0.7,
                max_tokens=1000,
            )
            parsed = prompts.parse_subtasks(result.content)
            return [
                {
                    "agent_id": p["agent_id"],
                    "description": parsed.get(p["agent_id"]) or prompts.default_subtask(p["role"]),
                }
                for p in profiles
            ]
        except Exception as e:
            logger.error(f"Task decomposition failed, using role-based subtasks: {e}")
            return [
                {"agent_id": p["agent_id"], "description": prompts.fallback_subtask(p["role"])}
                for p in profiles
            ]

    def _insert_assignments(self, task_id: str, subtasks: List[Dict[str, str]]):
        for order, subtask in enumerate(subtasks, start=1):
            self.supabase.table("task_assignments").insert({
                "task_id": task_id,
                "agent_id": subtask["agent_id"],
                "subtask_description": subtask["description"],
                "status": "PENDING",
                "execution_order": order,
            }).execute()

    def _create(self, team_id: str, user_id: str, title: str, description: str, priority: str,
                version_number: int, parent_task_id: Optional[str], llm: LLMClient) -> Dict[str, Any]:
        members = self.team_service.get_member_rows(team_id)
        if not members:
            raise HTTPException(status_code=400, detail="Team has no members to assign subtasks to")
        result = self.supabase.table("collaborative_tasks").insert({
            "team_id": team_id,
            "user_id": user_id,
            "title": title,
            "description": description,
            "status": "PENDING",
            "priority": priority,
            "version_number": version_number,
            "parent_task_id": parent_task_id,
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create task")
        task = result.data[0]
        subtasks = self.decompose(description, members, llm)
        try:
            self._insert_assignments(task["id"], subtasks)
        except Exception as e:
            logger.error(f"Failed to assign subtasks for task {task['id']}, removing it: {e}")
            self._remove_task_rows(task["id"])
            raise
        logger.info(f"Collaborative task created: {task['id']} with {len(subtasks)} subtasks")
        return task

    def create_task(self, team_id: str, task_data: TaskCreate, user_data: dict, llm: LLMClient) -> TaskResponse:
        """Create a task and decompose it into one assignment per team member"""
        check_team_access(team_id, user_data, self.supabase)
        version_number = 1
        if task_data.parent_task_id:
            parent = self._get_task_row(task_data.parent_task_id)
            if parent["team_id"] != team_id:
                raise HTTPException(status_code=400, detail="Parent task belongs to another team")
            version_number = (parent.get("version_number") or 1) + 1
        try:
            task = self._create(
                team_id, user_data["id"], task_data.title, task_data.description,
                task_data.priority, version_number, task_data.parent_task_id, llm
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return self.get_task(team_id, task["id"], user_data)

    def create_version(self, team_id: str, task_id: str, version_data: TaskVersionCreate,
                       user_data: dict, llm: LLMClient) -> TaskResponse:
        """New version of a task; every version points at the chain root"""
        original, _ = self.check_task_access(team_id, task_id, user_data)
        root_id = original.get("parent_task_id") or original["id"]
        chain = self._version_rows(root_id)
        version_number = max((t.get("version_number") or 1) for t in chain) + 1
        try:
            task = self._create(
                team_id,
                user_data["id"],
                version_data.title or original["title"],
                version_data.description or original["description"],
                version_data.priority or original.get("priority") or "MEDIUM",
                version_number,
                root_id,
                llm,
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        logger.info(f"Created new task version: {task['id']} from {task_id}")
        return self.get_task(team_id, task["id"], user_data)

    # Reads

    def _assignments(self, task_id: str, team_id: str) -> List[AssignmentResponse]:
        result = self.supabase.table("task_assignments")\
            .select("*")\
            .eq("task_id", task_id)\
            .order("execution_order")\
            .execute()
        members = {m["agent_id"]: m for m in self.team_service.get_member_rows(team_id)}
        agent_names = self._agent_names([a["agent_id"] for a in result.data or []])
        assignments = []
        for row in result.data or []:
            member = members.get(row["agent_id"]) or {}
            assignments.append(AssignmentResponse(
                **row,
                agent_name=agent_names.get(row["agent_id"]),
                role=member.get("role"),
            ))
        return assignments

    def _contributions(self, task_id: str) -> List[ContributionResponse]:
        result = self.supabase.table("agent_contributions")\
            .select("*")\
            .eq("task_id", task_id)\
            .order("created_at")\
            .execute()
        agent_names = self._agent_names([c["agent_id"] for c in result.data or []])
        return [ContributionResponse(**c, agent_name=agent_names.get(c["agent_id"])) for c in result.data or []]

    def _agent_names(self, agent_ids: List[str]) -> Dict[str, str]:
        if not agent_ids:
            return {}
        result = self.supabase.table("agents")\
            .select("id, name")\
            .in_("id", list(set(agent_ids)))\
            .execute()
        return {a["id"]: a["name"] for a in result.data or []}

    def _user_names(self, user_ids: List[str]) -> Dict[str, str]:
        if not user_ids:
            return {}
        result = self.supabase.table("users")\
            .select("id, name")\
            .in_("id", list(set(user_ids)))\
            .execute()
        return {u["id"]: u.get("name") for u in result.data or []}

    def _to_response(self, task: Dict[str, Any], team: Optional[Dict[str, Any]], user_id: str, **extra) -> TaskResponse:
        is_owner = task["user_id"] == user_id
        team_owner = bool(team) and team.get("user_id") == user_id
        return TaskResponse(**task, is_owner=is_owner, can_edit=is_owner or team_owner, **extra)

    def get_task(self, team_id: str, task_id: str, user_data: dict) -> TaskResponse:
        """Task with assignments and contributions"""
        task, team = self.check_task_access(team_id, task_id, user_data)
        return self._to_response(
            task, team, user_data["id"],
            assignments=self._assignments(task_id, team_id),
            contributions=self._contributions(task_id),
        )

    def list_tasks(self, team_id: str, user_data: dict) -> List[TaskResponse]:
        """Root tasks of a team with their version counts"""
        team = check_team_access(team_id, user_data, self.supabase)
        try:
            result = self.supabase.table("collaborative_tasks")\
                .select("*")\
                .eq("team_id", team_id)\
                .order("created_at", desc=True)\
                .execute()
            rows = result.data or []
            children: Dict[str, int] = {}
            for row in rows:
                if row.get("parent_task_id"):
                    children[row["parent_task_id"]] = children.get(row["parent_task_id"], 0) + 1
            return [
                self._to_response(
                    row, team, user_data["id"],
                    version_count=children.get(row["id"], 0) + 1,
                    assignments=self._assignments(row["id"], team_id),
                )
                for row in rows if not row.get("parent_task_id")
            ]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _version_rows(self, root_id: str) -> List[Dict[str, Any]]:
        root = self._get_task_row(root_id)
        children = self.supabase.table("collaborative_tasks")\
            .select("*")\
            .eq("parent_task_id", root_id)\
            .execute()
        rows = [root] + list(children.data or [])
        return sorted(rows, key=lambda t: t.get("version_number") or 1)

    def get_versions(self, team_id: str, task_id: str, user_data: dict) -> TaskVersionsResponse:
        task, team = self.check_task_access(team_id, task_id, user_data)
        rows = self._version_rows(task.get("parent_task_id") or task["id"])
        names = self._user_names([r["user_id"] for r in rows])
        versions = [
            self._to_response(row, team, user_data["id"], creator_name=names.get(row["user_id"]))
            for row in rows
        ]
        return TaskVersionsResponse(
            task=self._to_response(task, team, user_data["id"], creator_name=names.get(task["user_id"])),
            versions=versions,
        )

    # Writes

    def record_feedback(self, team_id: str, task_id: str, feedback: int, user_data: dict) -> TaskResponse:
        task, team = self.check_task_access(team_id, task_id, user_data)
        result = self.supabase.table("collaborative_tasks")\
            .update({"feedback": feedback})\
            .eq("id", task_id)\
            .execute()
        logger.info(f"Task feedback recorded: task_id={task_id}, feedback={feedback}")
        return self._to_response(result.data[0] if result.data else {**task, "feedback": feedback}, team, user_data["id"])

    def _remove_task_rows(self, task_id: str):
        for table in ("task_assignments", "agent_contributions", "task_attachments"):
            self.supabase.table(table)\
                .delete()\
                .eq("task_id", task_id)\
                .execute()
        self.supabase.table("collaborative_tasks")\
            .delete()\
            .eq("id", task_id)\
            .execute()

    def _promote_next_version(self, root_id: str):
        """Make the lowest remaining version the root of the chain"""
        children = self.supabase.table("collaborative_tasks")\
            .select("*")\
            .eq("parent_task_id", root_id)\
            .order("version_number")\
            .execute().data or []
        if not children:
            return
        new_root = children[0]
        self.supabase.table("collaborative_tasks")\
            .update({"parent_task_id": None})\
            .eq("id", new_root["id"])\
            .execute()
        self.supabase.table("collaborative_tasks")\
            .update({"parent_task_id": new_root["id"]})\
            .eq("parent_task_id", root_id)\
            .execute()
        logger.info(f"Task {new_root['id']} promoted to root of deleted task {root_id}")

    def delete_task(self, team_id: str, task_id: str, user_data: dict) -> bool:
        """Delete a task and its dependent rows (task creator only)"""
        task, _ = self.check_task_access(team_id, task_id, user_data)
        if task["user_id"] != user_data["id"]:
            raise HTTPException(status_code=403, detail="Only the task owner can delete it")
        try:
            if not task.get("parent_task_id"):
                self._promote_next_version(task_id)
            self._remove_task_rows(task_id)
            logger.info(f"Deleted task: {task_id}")
            return True
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
