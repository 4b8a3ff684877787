import logging
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any, List, Optional

from app.core.dependencies import check_agent_access
from app.database.supabase_client import first_or_none
from app.modules.agents.service import utc_now
from app.modules.saved_responses.schemas import (
    SavedResponseCreate, SavedResponseTargetUpdate, SavedResponseResponse
)

logger = logging.getLogger(__name__)


class SavedResponseService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def save_response(self, data: SavedResponseCreate, user_data: dict) -> SavedResponseResponse:
        """Keep an agent answer so it can be forwarded to another agent"""
        check_agent_access(data.original_agent_id, user_data, self.supabase)
        if data.target_agent_id:
            check_agent_access(data.target_agent_id, user_data, self.supabase)
        try:
            result = self.supabase.table("saved_responses").insert({
                **data.model_dump(),
                "user_id": user_data["id"],
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to save response")
            logger.info(f"Response saved: {result.data[0]['id']}")
            return SavedResponseResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error saving response: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Error saving response: {str(e)}")

    def list_responses(self, user_id: str, target_agent_id: Optional[str] = None) -> List[SavedResponseResponse]:
        query = self.supabase.table("saved_responses").select("*").eq("user_id", user_id)
        if target_agent_id:
            query = query.eq("target_agent_id", target_agent_id)
        result = query.order("created_at", desc=True).execute()
        return [SavedResponseResponse(**r) for r in result.data or []]

    def _get_own(self, response_id: str, user_id: str) -> Dict[str, Any]:
        saved = first_or_none(
            self.supabase.table("saved_responses")
            .select("*")
            .eq("id", response_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not saved:
            raise HTTPException(status_code=404, detail="Saved response not found")
        return saved

    def get_response(self, response_id: str, user_id: str) -> SavedResponseResponse:
        return SavedResponseResponse(**self._get_own(response_id, user_id))

    def update_target(self, response_id: str, data: SavedResponseTargetUpdate, user_data: dict) -> SavedResponseResponse:
        """Point a saved response at a different agent, e.g. to retry with another one"""
        self._get_own(response_id, user_data["id"])
        check_agent_access(data.target_agent_id, user_data, self.supabase)
        result = self.supabase.table("saved_responses")\
            .update({"target_agent_id": data.target_agent_id, "updated_at": utc_now()})\
            .eq("id", response_id)\
            .eq("user_id", user_data["id"])\
            .execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to update saved response")
        return SavedResponseResponse(**result.data[0])

    def delete_response(self, response_id: str, user_id: str) -> bool:
        self._get_own(response_id, user_id)
        result = self.supabase.table("saved_responses")\
            .delete()\
            .eq("id", response_id)\
            .eq("user_id", user_id)\
            .execute()
        logger.info(f"Saved response {response_id} deleted")
        return len(result.data) > 0
