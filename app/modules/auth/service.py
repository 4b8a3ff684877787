import hashlib
import time
import logging
from supabase import Client
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse,
    UserProfile, SyncUsersResponse
)
from app.database.supabase_client import first_or_none
from fastapi import HTTPException
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def default_display_name(email: Optional[str]) -> str:
    return (email or "").split("@")[0]


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _ensure_profile(self, user_id: str, email: Optional[str], name: str) -> Dict[str, Any]:
        """Return the public users row, creating it when missing"""
        try:
            existing = first_or_none(
                self.supabase.table("users")
                .select("id, email, name")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
            if existing:
                return existing
            result = self.supabase.table("users").insert({
                "id": user_id,
                "email": email,
                "name": name,
                "password": "",
            }).execute()
            logger.info(f"Created users profile for {user_id}")
            return result.data[0] if result.data else {"id": user_id, "email": email, "name": name}
        except Exception as e:
            # Auth still succeeds without the profile row
            logger.error(f"Failed to ensure users profile for {user_id}: {e}")
            return {"id": user_id, "email": email, "name": name}

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Register a new user using Supabase Auth"""
        name = register_data.name or default_display_name(register_data.email)
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {
                    "data": {"full_name": name}
                }
            })

            if not auth_response.user:
                raise HTTPException(status_code=400, detail="Failed to register user")
        except HTTPException:
            raise
        except Exception as e:
            error_message = str(e)
            if "already registered" in error_message.lower() or "already exists" in error_message.lower():
                raise HTTPException(status_code=400, detail="User already exists")
            logger.error(f"Register error: {error_message}")
            raise HTTPException(status_code=400, detail=error_message)

        user = auth_response.user
        profile = self._ensure_profile(user.id, user.email or register_data.email, name)
        session = auth_response.session
        return RegisterResponse(
            user=UserProfile(id=user.id, email=profile.get("email"), name=profile.get("name") or name),
            access_token=session.access_token if session else None,
            message="User registered successfully"
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except Exception as e:
            logger.info(f"Login failed for {login_data.email}: {e}")
            raise HTTPException(status_code=401, detail="Invalid email or password")

        if not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="Invalid email or password")

        user = auth_response.user
        metadata = user.user_metadata or {}
        name = metadata.get("full_name") or default_display_name(user.email)
        profile = self._ensure_profile(user.id, user.email or login_data.email, name)
        return TokenResponse(
            access_token=auth_response.session.access_token,
            token_type="bearer",
            user=UserProfile(id=user.id, email=user.email, name=profile.get("name") or name)
        )

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry:
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            user_response = self.supabase.auth.get_user(jwt=token)
            if not user_response or not user_response.user:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            user = user_response.user
            user_data = {
                "id": user.id,
                "email": user.email,
                "user_metadata": user.user_metadata or {},
                "app_metadata": user.app_metadata or {},
            }
            if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
                _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
            return user_data
        except HTTPException:
            raise
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            raise HTTPException(status_code=401, detail="Authentication failed")

    def logout(self, token: str) -> bool:
        """Drop the cached identity; Supabase JWTs are stateless and expire on their own"""
        _AUTH_USER_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Supabase sign_out failed: {e}")
            return False

    def get_profile(self, user_data: Dict[str, Any]) -> UserProfile:
        """Profile from public users, falling back to auth metadata"""
        profile = first_or_none(
            self.supabase.table("users")
            .select("id, email, name")
            .eq("id", user_data["id"])
            .limit(1)
            .execute()
        )
        if profile:
            return UserProfile(**profile)
        metadata = user_data.get("user_metadata") or {}
        return UserProfile(
            id=user_data["id"],
            email=user_data.get("email"),
            name=metadata.get("full_name") or default_display_name(user_data.get("email"))
        )

    def sync_users(self, admin_client: Client) -> SyncUsersResponse:
        """Copy auth users that have no public users row (requires service role key)"""
        try:
            auth_users = admin_client.auth.admin.list_users()
        except Exception as e:
            logger.error(f"Failed to list auth users: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to list auth users: {str(e)}")

        existing = admin_client.table("users").select("id").execute()
        existing_ids = {row["id"] for row in existing.data or []}

        synced = 0
        skipped = 0
        for user in auth_users:
            if user.id in existing_ids:
                skipped += 1
                continue
            metadata = user.user_metadata or {}
            try:
                admin_client.table("users").insert({
                    "id": user.id,
                    "email": user.email,
                    "name": metadata.get("full_name") or default_display_name(user.email),
                    "password": "",
                }).execute()
                synced += 1
            except Exception as e:
                logger.error(f"Failed to sync user {user.id}: {e}")
                skipped += 1
        logger.info(f"User sync finished: {synced} synced, {skipped} skipped")
        return SyncUsersResponse(synced=synced, skipped=skipped, total=len(auth_users))
