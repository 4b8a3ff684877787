import logging
from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, Iterator, List, Optional

from app.config import settings
from app.core.llm import LLMClient
from app.core.sse import format_sse_event
from app.database.supabase_client import first_or_none
from app.modules.agents.schemas import AgentSummary
from app.modules.agents.service import agent_model, agent_system_prompt, utc_now
from app.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupMemberResponse, GroupRoleResponse,
    GroupMessageCreate, GroupMessageResponse, GroupAgentResponse, GroupAgentMessageResponse
)

logger = logging.getLogger(__name__)

OWNER_ROLE = "owner"
MEMBER_ROLE = "member"


class GroupService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_group(self, group_id: str) -> Dict[str, Any]:
        group = first_or_none(
            self.supabase.table("groups")
            .select("*")
            .eq("id", group_id)
            .limit(1)
            .execute()
        )
        if not group:
            raise HTTPException(status_code=404, detail="Group not found")
        return group

    def _membership(self, group_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return first_or_none(
            self.supabase.table("group_members")
            .select("*")
            .eq("group_id", group_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )

    def create_group(self, group_data: GroupCreate, user_id: str) -> GroupResponse:
        """Create a group and register the creator as its owner"""
        try:
            result = self.supabase.table("groups").insert({
                "name": group_data.name,
                "description": group_data.description,
                "user_id": user_id,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create group")
            group = result.data[0]

            try:
                self.supabase.table("group_members").insert({
                    "group_id": group["id"],
                    "user_id": user_id,
                    "role": OWNER_ROLE,
                }).execute()
            except Exception as e:
                logger.error(f"Owner membership failed for group {group['id']}, removing group: {str(e)}")
                self.supabase.table("groups").delete().eq("id", group["id"]).execute()
                raise HTTPException(status_code=500, detail="Failed to add group owner as member")

            logger.info(f"Group {group['id']} created by {user_id}")
            return GroupResponse(**group, role=OWNER_ROLE)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Error creating group: {str(e)}")

    def list_my_groups(self, user_id: str) -> List[GroupResponse]:
        memberships = self.supabase.table("group_members")\
            .select("group_id, role")\
            .eq("user_id", user_id)\
            .execute()
        roles = {m["group_id"]: m["role"] for m in memberships.data or []}
        if not roles:
            return []
        groups = self.supabase.table("groups")\
            .select("*")\
            .in_("id", list(roles.keys()))\
            .order("created_at", desc=True)\
            .execute()
        return [GroupResponse(**g, role=roles.get(g["id"])) for g in groups.data or []]

    def list_remaining_groups(self, user_id: str) -> List[GroupResponse]:
        """Groups the user has not joined yet"""
        memberships = self.supabase.table("group_members")\
            .select("group_id")\
            .eq("user_id", user_id)\
            .execute()
        joined = {m["group_id"] for m in memberships.data or []}
        groups = self.supabase.table("groups")\
            .select("*")\
            .order("created_at", desc=True)\
            .execute()
        return [GroupResponse(**g) for g in groups.data or [] if g["id"] not in joined]

    def join_group(self, group_id: str, user_id: str) -> GroupMemberResponse:
        self._get_group(group_id)
        if self._membership(group_id, user_id):
            raise HTTPException(status_code=400, detail="Already a member of this group")
        result = self.supabase.table("group_members").insert({
            "group_id": group_id,
            "user_id": user_id,
            "role": MEMBER_ROLE,
        }).execute()
        logger.info(f"User {user_id} joined group {group_id}")
        return GroupMemberResponse(**result.data[0])

    def get_role(self, group_id: str, user_id: str) -> GroupRoleResponse:
        self._get_group(group_id)
        member = self._membership(group_id, user_id)
        return GroupRoleResponse(
            group_id=group_id,
            role=member["role"] if member else None,
            is_member=member is not None,
        )

    def update_group(self, group: Dict[str, Any], group_data: GroupUpdate) -> GroupResponse:
        update_data = group_data.model_dump(exclude_unset=True)
        if not update_data:
            return GroupResponse(**group)
        update_data["updated_at"] = utc_now()
        result = self.supabase.table("groups")\
            .update(update_data)\
            .eq("id", group["id"])\
            .execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to update group")
        return GroupResponse(**result.data[0])

    def delete_group(self, group_id: str) -> bool:
        """Remove a group together with its messages, agents and members"""
        for table in ("group_agent_messages", "group_messages", "group_agents", "group_members"):
            self.supabase.table(table).delete().eq("group_id", group_id).execute()
        result = self.supabase.table("groups").delete().eq("id", group_id).execute()
        logger.info(f"Group {group_id} deleted")
        return len(result.data) > 0

    def list_messages(self, group_id: str) -> List[GroupMessageResponse]:
        result = self.supabase.table("group_messages")\
            .select("*")\
            .eq("group_id", group_id)\
            .order("created_at")\
            .execute()
        return [GroupMessageResponse(**m) for m in result.data or []]

    def post_message(self, group_id: str, user_id: str, message: GroupMessageCreate, role: str = "user") -> GroupMessageResponse:
        result = self.supabase.table("group_messages").insert({
            "group_id": group_id,
            "user_id": user_id,
            "role": role,
            "content": message.content,
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to send message")
        return GroupMessageResponse(**result.data[0])

    def _group_agent(self, group_id: str, agent_id: str) -> Optional[Dict[str, Any]]:
        return first_or_none(
            self.supabase.table("group_agents")
            .select("*")
            .eq("group_id", group_id)
            .eq("agent_id", agent_id)
            .limit(1)
            .execute()
        )

    def require_group_agent(self, group_id: str, agent_id: str) -> Dict[str, Any]:
        group_agent = self._group_agent(group_id, agent_id)
        if not group_agent:
            raise HTTPException(status_code=404, detail="Agent is not part of this group")
        return group_agent

    def get_group_agent(self, group_id: str, agent_id: str) -> Dict[str, Any]:
        """Agent row for an agent attached to the group"""
        self.require_group_agent(group_id, agent_id)
        agent = first_or_none(
            self.supabase.table("agents")
            .select("*")
            .eq("id", agent_id)
            .eq("is_deleted", False)
            .limit(1)
            .execute()
        )
        if not agent:
            raise HTTPException(status_code=404, detail="Agent not found")
        return agent

    def add_agent(self, group_id: str, agent: Dict[str, Any], user_id: str) -> GroupAgentResponse:
        if self._group_agent(group_id, agent["id"]):
            raise HTTPException(status_code=400, detail="Agent already in group")
        result = self.supabase.table("group_agents").insert({
            "group_id": group_id,
            "agent_id": agent["id"],
            "added_by": user_id,
        }).execute()
        logger.info(f"Agent {agent['id']} added to group {group_id}")
        return GroupAgentResponse(**result.data[0], agent=AgentSummary(**agent))

    def list_agents(self, group_id: str) -> List[GroupAgentResponse]:
        rows = self.supabase.table("group_agents")\
            .select("*")\
            .eq("group_id", group_id)\
            .order("created_at")\
            .execute().data or []
        agents = {}
        agent_ids = [r["agent_id"] for r in rows]
        if agent_ids:
            result = self.supabase.table("agents")\
                .select("id, name, type, avatar")\
                .in_("id", agent_ids)\
                .execute()
            agents = {a["id"]: a for a in result.data or []}
        return [
            GroupAgentResponse(
                **row,
                agent=AgentSummary(**agents[row["agent_id"]]) if row["agent_id"] in agents else None,
            )
            for row in rows
        ]

    def agent_history(self, group_id: str, agent_id: str) -> List[GroupAgentMessageResponse]:
        result = self.supabase.table("group_agent_messages")\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("agent_id", agent_id)\
            .order("created_at")\
            .execute()
        return [GroupAgentMessageResponse(**m) for m in result.data or []]

    def _recent(self, table: str, group_id: str, agent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.supabase.table(table).select("*").eq("group_id", group_id)
        if agent_id:
            query = query.eq("agent_id", agent_id)
        else:
            query = query.eq("role", "agent")
        rows = query.order("created_at", desc=True).limit(settings.chat_history_limit).execute().data or []
        return list(reversed(rows))

    def build_agent_messages(self, group_id: str, agent: Dict[str, Any], message: str) -> List[Dict[str, Any]]:
        """
        Prompt for a group agent: system prompt, recent messages addressed to
        agents in this group and the agent's own recent replies, merged in time
        order, then the new message.
        """
        history = [
            (row.get("created_at") or "", {"role": "user", "content": row["content"]})
            for row in self._recent("group_messages", group_id)
        ]
        history += [
            (row.get("created_at") or "", {"role": "assistant", "content": row["message"]})
            for row in self._recent("group_agent_messages", group_id, agent["id"])
        ]
        history.sort(key=lambda item: str(item[0]))

        messages = [{"role": "system", "content": agent_system_prompt(agent)}]
        messages.extend(m for _, m in history)
        messages.append({"role": "user", "content": message})
        return messages

    def stream_agent_chat(
        self,
        group_id: str,
        agent: Dict[str, Any],
        user_id: str,
        message: str,
        llm: LLMClient,
    ) -> Iterator[str]:
        """Stream a group agent reply as SSE events: token..., done {reply}"""
        try:
            messages = self.build_agent_messages(group_id, agent, message)
            self.post_message(group_id, user_id, GroupMessageCreate(content=message), role="agent")

            tokens = []
            for token in llm.stream(
                messages,
                model=agent_model(agent),
                fallback_model=settings.default_model,
            ):
                tokens.append(token)
                yield format_sse_event("token", {"token": token})

            reply = "".join(tokens)
            if not reply.strip():
                yield format_sse_event("error", {"message": "Model returned no content."})
                return

            self.supabase.table("group_agent_messages").insert({
                "group_id": group_id,
                "agent_id": agent["id"],
                "user_id": user_id,
                "message": reply,
            }).execute()
            yield format_sse_event("done", {"reply": reply})
        except Exception as e:
            logger.exception(f"Group chat with agent {agent['id']} in group {group_id} failed: {e}")
            yield format_sse_event("error", {"message": "Chat failed"})
