from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, List
import logging

from app.core.dependencies import check_agent_access, get_shared_resource_ids
from app.database.supabase_client import first_or_none
from app.modules.agents.service import utc_now
from app.modules.conversations.schemas import (
    ConversationResponse, ConversationAgent, MessageResponse,
    MessageCreate, MessageCreateResponse, FeedbackRequest, FeedbackResponse
)

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _accessible_agents(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        owned = self.supabase.table("agents")\
            .select("id, name, avatar, user_id")\
            .eq("user_id", user_id)\
            .execute()
        agents = {a["id"]: a for a in owned.data or []}
        shared_ids = [i for i in get_shared_resource_ids("agent", user_id, self.supabase) if i not in agents]
        if shared_ids:
            shared = self.supabase.table("agents")\
                .select("id, name, avatar, user_id")\
                .in_("id", shared_ids)\
                .execute()
            agents.update({a["id"]: a for a in shared.data or []})
        return agents

    def _messages(self, conversation_id: str) -> List[MessageResponse]:
        result = self.supabase.table("messages")\
            .select("*")\
            .eq("conversation_id", conversation_id)\
            .order("created_at")\
            .execute()
        return [MessageResponse(**m) for m in result.data or []]

    def _to_response(self, conversation: Dict[str, Any], agent: Dict[str, Any], user_id: str,
                     messages: List[MessageResponse]) -> ConversationResponse:
        return ConversationResponse(
            id=conversation["id"],
            title=conversation.get("title"),
            user_id=conversation["user_id"],
            agent_id=conversation["agent_id"],
            agent=ConversationAgent(**agent) if agent else None,
            is_owner=conversation["user_id"] == user_id,
            messages=messages,
            created_at=conversation.get("created_at"),
            updated_at=conversation.get("updated_at"),
        )

    def list_conversations(self, user_id: str) -> List[ConversationResponse]:
        """Conversations of every accessible agent, each with its latest message"""
        try:
            agents = self._accessible_agents(user_id)
            if not agents:
                return []
            result = self.supabase.table("conversations")\
                .select("*")\
                .in_("agent_id", list(agents.keys()))\
                .order("updated_at", desc=True)\
                .execute()
            conversations = []
            for conversation in result.data or []:
                last = self.supabase.table("messages")\
                    .select("*")\
                    .eq("conversation_id", conversation["id"])\
                    .order("created_at", desc=True)\
                    .limit(1)\
                    .execute()
                messages = [MessageResponse(**m) for m in last.data or []]
                conversations.append(
                    self._to_response(conversation, agents.get(conversation["agent_id"]), user_id, messages)
                )
            return conversations
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_latest_for_agent(self, agent_id: str, user_data: dict) -> ConversationResponse:
        agent = check_agent_access(agent_id, user_data, self.supabase)
        conversation = first_or_none(
            self.supabase.table("conversations")
            .select("*")
            .eq("agent_id", agent_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not conversation:
            raise HTTPException(status_code=404, detail="No conversation found for this agent")
        return self._to_response(conversation, agent, user_data["id"], self._messages(conversation["id"]))

    def _get_conversation_row(self, conversation_id: str) -> Dict[str, Any]:
        conversation = first_or_none(
            self.supabase.table("conversations")
            .select("*")
            .eq("id", conversation_id)
            .limit(1)
            .execute()
        )
        if not conversation:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return conversation

    def get_conversation(self, conversation_id: str, user_data: dict) -> ConversationResponse:
        """Conversation with messages in chronological order (agent owner or shared)"""
        conversation = self._get_conversation_row(conversation_id)
        agent = check_agent_access(conversation["agent_id"], user_data, self.supabase)
        return self._to_response(conversation, agent, user_data["id"], self._messages(conversation_id))

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete conversation and its messages (owner only)"""
        conversation = self._get_conversation_row(conversation_id)
        if conversation["user_id"] != user_id:
            raise HTTPException(status_code=403, detail="Only the conversation owner can delete it")
        try:
            self.supabase.table("messages")\
                .delete()\
                .eq("conversation_id", conversation_id)\
                .execute()
            result = self.supabase.table("conversations")\
                .delete()\
                .eq("id", conversation_id)\
                .execute()
            logger.info(f"Deleted conversation {conversation_id}")
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def add_message(self, message_data: MessageCreate, user_data: dict) -> MessageCreateResponse:
        """
        Store a message for an agent. Without a conversation id the agent's newest
        conversation is reused, so shared users write into the owner's thread.
        """
        agent = check_agent_access(message_data.agent_id, user_data, self.supabase)
        try:
            conversation_id = message_data.conversation_id
            if not conversation_id:
                existing = first_or_none(
                    self.supabase.table("conversations")
                    .select("id")
                    .eq("agent_id", agent["id"])
                    .order("created_at", desc=True)
                    .limit(1)
                    .execute()
                )
                if existing:
                    conversation_id = existing["id"]
                else:
                    created = self.supabase.table("conversations").insert({
                        "user_id": agent["user_id"],
                        "agent_id": agent["id"],
                        "title": agent.get("name") or "New Conversation",
                    }).execute()
                    conversation_id = created.data[0]["id"]
                    logger.info(f"Created conversation {conversation_id} for agent {agent['id']}")
            elif self._get_conversation_row(conversation_id)["agent_id"] != agent["id"]:
                raise HTTPException(status_code=404, detail="Conversation not found")

            result = self.supabase.table("messages").insert({
                "conversation_id": conversation_id,
                "role": message_data.role,
                "content": message_data.message,
            }).execute()
            self.supabase.table("conversations")\
                .update({"updated_at": utc_now()})\
                .eq("id", conversation_id)\
                .execute()
            return MessageCreateResponse(
                conversation_id=conversation_id,
                message=MessageResponse(**result.data[0])
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def record_feedback(self, feedback_data: FeedbackRequest, user_data: dict) -> FeedbackResponse:
        message = first_or_none(
            self.supabase.table("messages")
            .select("id, conversation_id")
            .eq("id", feedback_data.message_id)
            .limit(1)
            .execute()
        )
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        conversation = self._get_conversation_row(message["conversation_id"])
        check_agent_access(conversation["agent_id"], user_data, self.supabase)
        self.supabase.table("messages")\
            .update({"feedback": feedback_data.feedback})\
            .eq("id", feedback_data.message_id)\
            .execute()
        return FeedbackResponse(message_id=feedback_data.message_id, feedback=feedback_data.feedback)
