import logging
from supabase import Client
from fastapi import HTTPException
from typing import Any, Dict, List, Optional

from app.database.supabase_client import first_or_none
from app.modules.agents.service import utc_now
from app.modules.shares.schemas import ShareRequestCreate, ShareRequestResponse, SharedResourceResponse

logger = logging.getLogger(__name__)

# resource type -> (table, display column)
RESOURCE_TABLES = {
    "agent": ("agents", "name"),
    "team": ("teams", "name"),
    "task": ("collaborative_tasks", "title"),
}


class ShareService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_resource(self, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        table, name_column = RESOURCE_TABLES[resource_type]
        query = self.supabase.table(table).select(f"id, user_id, {name_column}").eq("id", resource_id)
        if resource_type == "agent":
            query = query.eq("is_deleted", False)
        return first_or_none(query.limit(1).execute())

    def _resource_names(self, rows: List[Dict[str, Any]]) -> Dict[tuple, str]:
        """Map (resource_type, resource_id) to the resource's name or title"""
        names = {}
        for resource_type, (table, name_column) in RESOURCE_TABLES.items():
            ids = list({r["resource_id"] for r in rows if r["resource_type"] == resource_type})
            if not ids:
                continue
            result = self.supabase.table(table)\
                .select(f"id, {name_column}")\
                .in_("id", ids)\
                .execute()
            for resource in result.data or []:
                names[(resource_type, resource["id"])] = resource.get(name_column)
        return names

    def _with_names(self, rows: List[Dict[str, Any]], schema):
        names = self._resource_names(rows)
        return [
            schema(**row, resource_name=names.get((row["resource_type"], row["resource_id"])))
            for row in rows
        ]

    def create_request(self, request: ShareRequestCreate, user_id: str) -> ShareRequestResponse:
        """Ask the owner of a resource for access to it"""
        resource = self._get_resource(request.resource_type, request.resource_id)
        if not resource:
            raise HTTPException(status_code=404, detail=f"{request.resource_type.capitalize()} not found")
        if resource["user_id"] == user_id:
            raise HTTPException(status_code=400, detail="You already own this resource")

        pending = first_or_none(
            self.supabase.table("share_requests")
            .select("id")
            .eq("resource_type", request.resource_type)
            .eq("resource_id", request.resource_id)
            .eq("requester_user_id", user_id)
            .eq("status", "pending")
            .limit(1)
            .execute()
        )
        if pending:
            raise HTTPException(status_code=400, detail="A pending request for this resource already exists")

        result = self.supabase.table("share_requests").insert({
            "resource_type": request.resource_type,
            "resource_id": request.resource_id,
            "requester_user_id": user_id,
            "owner_user_id": resource["user_id"],
            "status": "pending",
            "message": request.message,
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create share request")
        logger.info(f"Share request for {request.resource_type} {request.resource_id} created by {user_id}")
        _, name_column = RESOURCE_TABLES[request.resource_type]
        return ShareRequestResponse(**result.data[0], resource_name=resource.get(name_column))

    def list_incoming(self, user_id: str) -> List[ShareRequestResponse]:
        result = self.supabase.table("share_requests")\
            .select("*")\
            .eq("owner_user_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return self._with_names(result.data or [], ShareRequestResponse)

    def list_outgoing(self, user_id: str) -> List[ShareRequestResponse]:
        result = self.supabase.table("share_requests")\
            .select("*")\
            .eq("requester_user_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return self._with_names(result.data or [], ShareRequestResponse)

    def _pending_request_for_owner(self, request_id: str, user_id: str) -> Dict[str, Any]:
        share_request = first_or_none(
            self.supabase.table("share_requests")
            .select("*")
            .eq("id", request_id)
            .limit(1)
            .execute()
        )
        if not share_request:
            raise HTTPException(status_code=404, detail="Share request not found")
        if share_request["owner_user_id"] != user_id:
            raise HTTPException(status_code=403, detail="Only the resource owner can respond to this request")
        if share_request["status"] != "pending":
            raise HTTPException(status_code=400, detail=f"Share request already {share_request['status']}")
        return share_request

    def _set_status(self, request_id: str, status: str) -> Dict[str, Any]:
        result = self.supabase.table("share_requests")\
            .update({"status": status, "responded_at": utc_now()})\
            .eq("id", request_id)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to update share request")
        return result.data[0]

    def approve_request(self, request_id: str, user_id: str) -> ShareRequestResponse:
        """Approve a pending request and grant access unless already granted"""
        share_request = self._pending_request_for_owner(request_id, user_id)
        existing = first_or_none(
            self.supabase.table("resource_access")
            .select("id")
            .eq("resource_type", share_request["resource_type"])
            .eq("resource_id", share_request["resource_id"])
            .eq("user_id", share_request["requester_user_id"])
            .limit(1)
            .execute()
        )
        if not existing:
            self.supabase.table("resource_access").insert({
                "resource_type": share_request["resource_type"],
                "resource_id": share_request["resource_id"],
                "user_id": share_request["requester_user_id"],
                "granted_by": user_id,
            }).execute()
        updated = self._set_status(request_id, "approved")
        logger.info(f"Share request {request_id} approved by {user_id}")
        return self._with_names([updated], ShareRequestResponse)[0]

    def reject_request(self, request_id: str, user_id: str) -> ShareRequestResponse:
        self._pending_request_for_owner(request_id, user_id)
        updated = self._set_status(request_id, "rejected")
        logger.info(f"Share request {request_id} rejected by {user_id}")
        return self._with_names([updated], ShareRequestResponse)[0]

    def list_shared_with_me(self, user_id: str) -> List[SharedResourceResponse]:
        result = self.supabase.table("resource_access")\
            .select("*")\
            .eq("user_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return self._with_names(result.data or [], SharedResourceResponse)

    def revoke_access(self, access_id: str, user_id: str) -> bool:
        """Either side of a grant can remove it"""
        access = first_or_none(
            self.supabase.table("resource_access")
            .select("*")
            .eq("id", access_id)
            .limit(1)
            .execute()
        )
        if not access:
            raise HTTPException(status_code=404, detail="Shared resource not found")
        if user_id not in (access["user_id"], access["granted_by"]):
            raise HTTPException(status_code=403, detail="Not allowed to revoke this access")
        result = self.supabase.table("resource_access")\
            .delete()\
            .eq("id", access_id)\
            .execute()
        # Approved agent requests also open the owner's teams
        self.supabase.table("share_requests")\
            .update({"status": "revoked", "responded_at": utc_now()})\
            .eq("resource_type", access["resource_type"])\
            .eq("resource_id", access["resource_id"])\
            .eq("requester_user_id", access["user_id"])\
            .eq("status", "approved")\
            .execute()
        logger.info(f"Access {access_id} to {access['resource_type']} {access['resource_id']} revoked by {user_id}")
        return len(result.data) > 0
