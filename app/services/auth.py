"""Bearer token verification against Supabase Auth."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class SupabaseAuthClient:
    """Resolves Supabase access tokens to stable user identifiers."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    @property
    def configured(self) -> bool:
        return bool(
            self._settings.supabase_url and self._settings.supabase_service_role_key
        )

    async def resolve_user_id(self, token: str) -> str | None:
        """Return the user id owning ``token`` or ``None`` if it is not valid.

        Transport failures raise :class:`httpx.HTTPError` so callers can tell
        an unreachable identity provider apart from a rejected token.
        """

        if not token:
            return None
        if not self.configured:
            logger.warning("Supabase credentials missing, rejecting bearer token")
            return None

        response = await self._client.get(
            "/auth/v1/user",
            headers={
                "apikey": str(self._settings.supabase_service_role_key),
                "Authorization": f"Bearer {token}",
            },
        )
        if response.status_code >= 500:
            logger.warning(
                "Supabase auth lookup failed (%s): %s",
                response.status_code,
                response.text,
            )
            response.raise_for_status()
        if response.status_code >= 400:
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(user_id, str) or not user_id:
            return None
        return user_id
