"""
Identity Provider Client
Resolves session tokens to users and reads the subscription plan from user metadata
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import IDENTITY_API_URL, IDENTITY_SECRET_KEY, IDENTITY_TIMEOUT, PLAN_TIERS
from ..errors import IdentityServiceError, Unauthenticated
from ..models import User

logger = logging.getLogger(__name__)


def plan_from_metadata(data: Dict[str, Any]) -> str:
    """Read plan from public metadata; anything unknown is treated as free"""
    metadata = data.get("public_metadata") or {}
    plan = str(metadata.get("plan") or "").lower()
    return plan if plan in PLAN_TIERS else "free"


class IdentityClient:
    """
    Thin async wrapper over the identity provider's backend API

    Endpoints used:
      POST /v1/tokens/verify   {"token": ...} -> {"user_id": ...}
      GET  /v1/users/{id}      -> {"id": ..., "public_metadata": {"plan": ...}}
    """

    def __init__(
        self,
        base_url: str = IDENTITY_API_URL,
        secret_key: str = IDENTITY_SECRET_KEY,
        timeout: float = IDENTITY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

        if not secret_key:
            logger.warning("IDENTITY_SECRET_KEY not set - identity lookups will fail")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise IdentityServiceError("Identity provider unavailable")

        if response.status_code in (401, 403, 404):
            raise Unauthenticated("Authentication required")

        if response.status_code >= 400:
            logger.error(f"Identity provider returned {response.status_code} for {path}")
            raise IdentityServiceError(f"Identity provider error ({response.status_code})")

        return response.json()

    async def authenticate(self, token: str) -> User:
        """
        Resolve a session token to a user
        Raises:
            Unauthenticated: Missing or rejected token
            IdentityServiceError: Provider unreachable or failing
        """
        if not token:
            raise Unauthenticated("Authentication required")

        data = await self._request("POST", "/v1/tokens/verify", json={"token": token})
        user_id = data.get("user_id") or data.get("sub")
        if not user_id:
            raise Unauthenticated("Authentication required")

        return await self.get_user(user_id)

    async def get_user(self, user_id: str) -> User:
        data = await self._request("GET", f"/v1/users/{user_id}")
        return User(id=data.get("id") or user_id, plan=plan_from_metadata(data))
