"""
Zoom server-to-server OAuth client.

Access tokens come from the account_credentials grant and are cached until
one minute before they expire.
"""

import logging
import time
from datetime import datetime
from typing import Optional

import httpx

from stemelix import config
from stemelix.errors import Internal

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN_SECONDS = 60


class ZoomClient:
    def __init__(self, account_id: str = None, client_id: str = None, client_secret: str = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.account_id = account_id or config.ZOOM_ACCOUNT_ID
        self.client_id = client_id or config.ZOOM_CLIENT_ID
        self.client_secret = client_secret or config.ZOOM_CLIENT_SECRET
        self.transport = transport
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=config.ZOOM_TIMEOUT_SECONDS, transport=self.transport)

    async def get_access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if not (self.account_id and self.client_id and self.client_secret):
            raise Internal("Zoom credentials are not configured")

        async with self._client() as client:
            try:
                response = await client.post(
                    config.ZOOM_OAUTH_URL,
                    params={"grant_type": "account_credentials", "account_id": self.account_id},
                    auth=(self.client_id, self.client_secret),
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Zoom token request failed: %s", e)
                raise Internal("Could not authenticate with Zoom")

        data = response.json()
        self._token = data["access_token"]
        self._token_expires_at = time.monotonic() + data.get("expires_in", 3600) - TOKEN_REFRESH_MARGIN_SECONDS
        return self._token

    async def create_meeting(self, topic: str, start_time: datetime, duration: int) -> dict:
        """Create a scheduled meeting; returns Zoom's meeting payload (id, join_url, start_url)"""
        token = await self.get_access_token()
        payload = {
            "topic": topic,
            "type": 2,  # scheduled
            "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": duration,
            "timezone": config.ZOOM_TIMEZONE,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "mute_upon_entry": True,
                "waiting_room": False,
                "approval_type": 0,
            },
        }
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{config.ZOOM_API_URL}/users/me/meetings",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Zoom API error: %s", e)
                raise Internal("Failed to create Zoom meeting. Please try again.")
        return response.json()
