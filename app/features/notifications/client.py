# app/features/notifications/client.py
"""
Minimal async client for the Resend email HTTP API.

One shared httpx.AsyncClient per process (created in the app lifespan,
closed on shutdown). Non-2xx responses raise httpx.HTTPStatusError so the
caller decides what a failure means.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ResendClient:
    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        sender: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_url = api_url
        self._sender = sender
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            transport=transport,
        )

    async def send(self, *, to: str, subject: str, text: str) -> Dict[str, Any]:
        payload = {"from": self._sender, "to": [to], "subject": subject, "text": text}
        resp = await self._client.post(self._api_url, json=payload)
        if resp.status_code >= 400:
            logger.warning("resend:send_failed status=%s body=%s", resp.status_code, resp.text[:300])
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    async def aclose(self) -> None:
        await self._client.aclose()
