import logging
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any, List

from app.core.dependencies import check_agent_access
from app.database.supabase_client import first_or_none
from app.modules.cross_replies.schemas import (
    CrossReplyCreate, CrossReplyResponseCreate, CrossReplyResponse, CrossAgentResponse
)

logger = logging.getLogger(__name__)


class CrossReplyService:
    """
    A cross-reply session re-asks a question one agent answered to other
    agents. Each answer is a message in the other agent's conversation;
    the session only records where those answers live.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_cross_reply(self, data: CrossReplyCreate, user_data: dict) -> CrossReplyResponse:
        check_agent_access(data.original_agent_id, user_data, self.supabase)
        result = self.supabase.table("cross_agent_replies").insert({
            **data.model_dump(),
            "user_id": user_data["id"],
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create cross-reply")
        logger.info(f"Cross-reply {result.data[0]['id']} created by {user_data['id']}")
        return CrossReplyResponse(**result.data[0])

    def _responses(self, cross_reply_ids: List[str]) -> Dict[str, List[CrossAgentResponse]]:
        """Responses per session, with agent names and message contents merged in"""
        if not cross_reply_ids:
            return {}
        rows = self.supabase.table("cross_agent_responses")\
            .select("*")\
            .in_("cross_reply_id", cross_reply_ids)\
            .order("created_at")\
            .execute().data or []
        if not rows:
            return {}

        agent_ids = list({r["agent_id"] for r in rows})
        message_ids = list({r["response_message_id"] for r in rows})
        agents = self.supabase.table("agents")\
            .select("id, name")\
            .in_("id", agent_ids)\
            .execute().data or []
        messages = self.supabase.table("messages")\
            .select("id, content")\
            .in_("id", message_ids)\
            .execute().data or []
        agent_names = {a["id"]: a["name"] for a in agents}
        contents = {m["id"]: m["content"] for m in messages}

        grouped: Dict[str, List[CrossAgentResponse]] = {}
        for row in rows:
            grouped.setdefault(row["cross_reply_id"], []).append(CrossAgentResponse(
                id=row["id"],
                agent_id=row["agent_id"],
                agent_name=agent_names.get(row["agent_id"]) or "Unknown Agent",
                conversation_id=row["conversation_id"],
                response_message_id=row["response_message_id"],
                response_content=contents.get(row["response_message_id"]) or "",
                created_at=row.get("created_at"),
            ))
        return grouped

    def list_cross_replies(self, user_id: str) -> List[CrossReplyResponse]:
        rows = self.supabase.table("cross_agent_replies")\
            .select("*")\
            .eq("user_id", user_id)\
            .order("created_at", desc=True)\
            .execute().data or []
        responses = self._responses([r["id"] for r in rows])
        return [CrossReplyResponse(**r, responses=responses.get(r["id"], [])) for r in rows]

    def _get_own(self, cross_reply_id: str, user_id: str) -> Dict[str, Any]:
        cross_reply = first_or_none(
            self.supabase.table("cross_agent_replies")
            .select("*")
            .eq("id", cross_reply_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not cross_reply:
            raise HTTPException(status_code=404, detail="Cross-reply not found")
        return cross_reply

    def get_cross_reply(self, cross_reply_id: str, user_id: str) -> CrossReplyResponse:
        cross_reply = self._get_own(cross_reply_id, user_id)
        responses = self._responses([cross_reply_id])
        return CrossReplyResponse(**cross_reply, responses=responses.get(cross_reply_id, []))

    def add_response(self, cross_reply_id: str, data: CrossReplyResponseCreate, user_data: dict) -> CrossReplyResponse:
        self._get_own(cross_reply_id, user_data["id"])
        check_agent_access(data.agent_id, user_data, self.supabase)
        self.supabase.table("cross_agent_responses").insert({
            **data.model_dump(),
            "cross_reply_id": cross_reply_id,
        }).execute()
        logger.info(f"Agent {data.agent_id} response added to cross-reply {cross_reply_id}")
        return self.get_cross_reply(cross_reply_id, user_data["id"])

    def delete_cross_reply(self, cross_reply_id: str, user_id: str) -> bool:
        self._get_own(cross_reply_id, user_id)
        self.supabase.table("cross_agent_responses")\
            .delete()\
            .eq("cross_reply_id", cross_reply_id)\
            .execute()
        result = self.supabase.table("cross_agent_replies")\
            .delete()\
            .eq("id", cross_reply_id)\
            .eq("user_id", user_id)\
            .execute()
        logger.info(f"Cross-reply {cross_reply_id} deleted")
        return len(result.data) > 0
