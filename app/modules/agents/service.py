import json
import time
import logging
from datetime import datetime, timezone
from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, Iterator, List, Optional

from app.config import settings
from app.core.llm import LLMClient
from app.core.sse import format_sse_event
from app.core.dependencies import check_agent_access, get_shared_resource_ids
from app.database.supabase_client import first_or_none
from app.modules.agents.schemas import (
    AgentCreate, AgentUpdate, AgentResponse, AgentMetrics, AgentConfiguration,
    AgentTestResponse, AgentChatRequest, DEFAULT_SYSTEM_PROMPT
)
from app.modules.uploads.storage import AttachmentStorage

logger = logging.getLogger(__name__)


def parse_json_field(value: Any, default: Any) -> Any:
    """jsonb columns may come back as strings from older rows"""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


def agent_configuration(agent: Dict[str, Any]) -> Dict[str, Any]:
    config = parse_json_field(agent.get("configuration"), {})
    return config if isinstance(config, dict) else {}


def agent_model(agent: Dict[str, Any]) -> str:
    return agent_configuration(agent).get("model") or settings.default_model


def agent_system_prompt(agent: Dict[str, Any]) -> str:
    return agent_configuration(agent).get("system_prompt") or DEFAULT_SYSTEM_PROMPT


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AgentService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _to_response(self, agent: Dict[str, Any], user_id: str, metrics: Optional[Dict[str, Any]] = None) -> AgentResponse:
        data = dict(agent)
        data["configuration"] = agent_configuration(agent)
        data["capabilities"] = parse_json_field(agent.get("capabilities"), []) or []
        stored = parse_json_field(agent.get("metrics"), {}) or {}
        data["metrics"] = AgentMetrics(**{**stored, **(metrics or {})})
        data["is_owner"] = agent["user_id"] == user_id
        return AgentResponse(**data)

    def create_agent(self, agent_data: AgentCreate, user_id: str) -> AgentResponse:
        """Create a new agent"""
        try:
            configuration = agent_data.configuration or AgentConfiguration(model=settings.default_model)
            result = self.supabase.table("agents").insert({
                "user_id": user_id,
                "name": agent_data.name,
                "description": agent_data.description,
                "type": agent_data.type,
                "status": "ACTIVE",
                "avatar": agent_data.avatar,
                "capabilities": agent_data.capabilities,
                "configuration": configuration.model_dump(),
                "metrics": AgentMetrics().model_dump(),
                "is_deleted": False,
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create agent")

            logger.info(f"Agent created: {result.data[0]['id']}")
            return self._to_response(result.data[0], user_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _live_metrics(self, agent_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Interaction counts and success rates computed from stored messages"""
        if not agent_ids:
            return {}
        conversations = self.supabase.table("conversations")\
            .select("id, agent_id")\
            .in_("agent_id", agent_ids)\
            .execute()
        agent_by_conversation = {c["id"]: c["agent_id"] for c in conversations.data or []}
        counts = {agent_id: {"total": 0, "likes": 0, "rated": 0} for agent_id in agent_ids}
        if agent_by_conversation:
            messages = self.supabase.table("messages")\
                .select("conversation_id, feedback")\
                .in_("conversation_id", list(agent_by_conversation.keys()))\
                .execute()
            for message in messages.data or []:
                bucket = counts[agent_by_conversation[message["conversation_id"]]]
                bucket["total"] += 1
                feedback = message.get("feedback")
                if feedback == 1:
                    bucket["likes"] += 1
                    bucket["rated"] += 1
                elif feedback == -1:
                    bucket["rated"] += 1

        live = {}
        for agent_id, bucket in counts.items():
            success_rate = round(bucket["likes"] / bucket["rated"] * 100) if bucket["rated"] else 0
            live[agent_id] = {"totalInteractions": bucket["total"], "successRate": success_rate}
        return live

    def list_agents(self, user_id: str) -> List[AgentResponse]:
        """List the user's agents with live metrics"""
        try:
            result = self.supabase.table("agents")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("is_deleted", False)\
                .order("created_at", desc=True)\
                .execute()
            agents = result.data or []
            live = self._live_metrics([a["id"] for a in agents])
            return [self._to_response(a, user_id, live.get(a["id"])) for a in agents]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_accessible_agents(self, user_id: str) -> List[Dict[str, Any]]:
        """Raw rows of every non-deleted agent the user owns or was granted"""
        owned = self.supabase.table("agents")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("is_deleted", False)\
            .execute()
        agents = list(owned.data or [])
        shared_ids = [i for i in get_shared_resource_ids("agent", user_id, self.supabase)
                      if i not in {a["id"] for a in agents}]
        if shared_ids:
            shared = self.supabase.table("agents")\
                .select("*")\
                .in_("id", shared_ids)\
                .eq("is_deleted", False)\
                .execute()
            agents.extend(shared.data or [])
        return agents

    def get_agent(self, agent_id: str, user_data: dict) -> AgentResponse:
        agent = check_agent_access(agent_id, user_data, self.supabase)
        return self._to_response(agent, user_data["id"])

    def _get_owned_agent(self, agent_id: str, user_data: dict) -> Dict[str, Any]:
        agent = check_agent_access(agent_id, user_data, self.supabase)
        if agent["user_id"] != user_data["id"]:
            raise HTTPException(status_code=403, detail="Only the agent owner can modify it")
        return agent

    def update_agent(self, agent_id: str, agent_data: AgentUpdate, user_data: dict) -> AgentResponse:
        """Update agent (owner only)"""
        agent = self._get_owned_agent(agent_id, user_data)
        try:
            update_data = agent_data.model_dump(exclude_unset=True, exclude_none=True)
            if agent_data.configuration is not None:
                update_data["configuration"] = {
                    **agent_configuration(agent),
                    **agent_data.configuration.model_dump(exclude_unset=True),
                }
            if not update_data:
                return self._to_response(agent, user_data["id"])
            update_data["updated_at"] = utc_now()

            result = self.supabase.table("agents")\
                .update(update_data)\
                .eq("id", agent_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Agent not found")

            return self._to_response(result.data[0], user_data["id"])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_agent(self, agent_id: str, user_data: dict) -> bool:
        """Soft delete agent (owner only)"""
        self._get_owned_agent(agent_id, user_data)
        try:
            result = self.supabase.table("agents")\
                .update({"is_deleted": True, "updated_at": utc_now()})\
                .eq("id", agent_id)\
                .execute()
            logger.info(f"Agent soft-deleted: {agent_id}")
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def test_agent(self, agent: Dict[str, Any], message: str, llm: LLMClient) -> AgentTestResponse:
        """Single non-streaming completion with the agent's prompt and model"""
        messages = [
            {"role": "system", "content": agent_system_prompt(agent)},
            {"role": "user", "content": message},
        ]
        try:
            result = llm.complete_with_fallback(
                messages,
                model=agent_model(agent),
                fallback_model=settings.default_model,
                temperature=0.7,
            )
        except Exception as e:
            logger.error(f"Agent test failed for {agent['id']}: {e}")
            raise HTTPException(status_code=502, detail=f"Agent test failed: {str(e)}")
        return AgentTestResponse(
            agent_name=agent["name"],
            content=result.content,
            model=result.model,
            usage=result.usage,
        )

    def check_conversation(self, agent: Dict[str, Any], conversation_id: Optional[str]):
        """Refuse a conversation id that belongs to a different agent"""
        if not conversation_id:
            return
        existing = first_or_none(
            self.supabase.table("conversations")
            .select("id, agent_id")
            .eq("id", conversation_id)
            .limit(1)
            .execute()
        )
        if existing and existing["agent_id"] != agent["id"]:
            raise HTTPException(status_code=404, detail="Conversation not found")

    def _resolve_conversation(self, agent: Dict[str, Any], conversation_id: Optional[str], user_id: str) -> str:
        if conversation_id:
            existing = first_or_none(
                self.supabase.table("conversations")
                .select("id")
                .eq("id", conversation_id)
                .eq("agent_id", agent["id"])
                .limit(1)
                .execute()
            )
            if existing:
                return existing["id"]
        result = self.supabase.table("conversations").insert({
            "user_id": user_id,
            "agent_id": agent["id"],
            "title": agent.get("name") or "New Conversation",
        }).execute()
        return result.data[0]["id"]

    def _insert_message(self, conversation_id: str, role: str, content: str) -> Dict[str, Any]:
        result = self.supabase.table("messages").insert({
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
        }).execute()
        self.supabase.table("conversations")\
            .update({"updated_at": utc_now()})\
            .eq("id", conversation_id)\
            .execute()
        return result.data[0] if result.data else {}

    def _load_history(self, conversation_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("messages")\
            .select("id, role, content, created_at")\
            .eq("conversation_id", conversation_id)\
            .order("created_at", desc=True)\
            .limit(settings.chat_history_limit + 1)\
            .execute()
        return list(reversed(result.data or []))

    def _build_messages(
        self,
        agent: Dict[str, Any],
        history: List[Dict[str, Any]],
        user_message: str,
        storage: AttachmentStorage,
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": agent_system_prompt(agent)}]
        messages.extend(
            {"role": m["role"], "content": m["content"]}
            for m in history
            if m.get("role") in ("user", "assistant", "system")
        )
        if not history or history[-1].get("role") != "user":
            messages.append({"role": "user", "content": user_message})
            return messages

        last = history[-1]
        attachments = self.supabase.table("message_attachments")\
            .select("file_name, original_file_name, file_type, file_path")\
            .eq("message_id", last["id"])\
            .order("uploaded_at")\
            .execute()
        image_parts = storage.image_parts(attachments.data or [])
        if image_parts:
            messages[-1] = {
                "role": "user",
                "content": [{"type": "text", "text": last["content"]}] + image_parts,
            }
        return messages

    def update_metrics(self, agent_id: str, success: bool, response_time_ms: float, tokens: int = 0):
        """Fold one interaction into the agent's rolling metrics"""
        agent = first_or_none(
            self.supabase.table("agents")
            .select("metrics")
            .eq("id", agent_id)
            .limit(1)
            .execute()
        )
        current = parse_json_field((agent or {}).get("metrics"), {}) or {}
        total = (current.get("totalInteractions") or 0) + 1
        avg_response_time = ((current.get("avgResponseTime") or 0) * (total - 1) + response_time_ms) / total
        success_rate = ((current.get("successRate") or 0) / 100 * (total - 1) + (1 if success else 0)) / total * 100
        metrics = {
            **current,
            "totalInteractions": total,
            "avgResponseTime": avg_response_time,
            "successRate": success_rate,
            "totalTokens": (current.get("totalTokens") or 0) + tokens,
        }
        self.supabase.table("agents")\
            .update({"metrics": metrics, "last_active": utc_now()})\
            .eq("id", agent_id)\
            .execute()
        return metrics

    def _safe_update_metrics(self, agent_id: str, success: bool, started: float, usage: Dict[str, int]):
        elapsed_ms = (time.monotonic() - started) * 1000
        try:
            self.update_metrics(agent_id, success, elapsed_ms, usage.get("total_tokens", 0))
        except Exception as e:
            logger.error(f"Failed to update metrics for agent {agent_id}: {e}")

    def stream_chat(
        self,
        agent: Dict[str, Any],
        chat: AgentChatRequest,
        user_id: str,
        llm: LLMClient,
        storage: AttachmentStorage,
    ) -> Iterator[str]:
        """
        Stream an agent reply as SSE events: meta, init, token..., done.
        The user message is stored first (unless the client already stored it),
        then the reply is stored and the agent metrics are updated.
        """
        try:
            conversation_id = self._resolve_conversation(agent, chat.conversation_id, user_id)
            if not chat.skip_user_message:
                self._insert_message(conversation_id, "user", chat.message)
            history = self._load_history(conversation_id)
            messages = self._build_messages(agent, history, chat.message, storage)

            yield format_sse_event("meta", {"conversation_id": conversation_id})
            yield format_sse_event("init", "connected")

            usage: Dict[str, int] = {}
            started = time.monotonic()
            tokens = []
            for token in llm.stream(
                messages,
                model=agent_model(agent),
                fallback_model=settings.default_model,
                usage=usage,
            ):
                tokens.append(token)
                yield format_sse_event("token", {"token": token})

            reply = "".join(tokens)
            if not reply.strip():
                self._safe_update_metrics(agent["id"], False, started, usage)
                yield format_sse_event("error", {"message": "Model returned no content."})
                return

            saved = self._insert_message(conversation_id, "assistant", reply)
            self._safe_update_metrics(agent["id"], True, started, usage)
            yield format_sse_event("done", {
                "conversation_id": conversation_id,
                "message_id": saved.get("id"),
            })
        except Exception as e:
            logger.exception(f"Chat with agent {agent['id']} failed: {e}")
            yield format_sse_event("error", {"message": "Chat failed"})
