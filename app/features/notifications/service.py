"""
Quote-paid notification (best effort).

Without RESEND_API_KEY the notifier is built with no client and every send
is reported as skipped. A failed send is logged and reported on the
transition response; it never undoes the transition.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import Request

from app.core.config import config
from app.core.errors import BestEffortError, SideEffectOutcome
from app.features.notifications.client import ResendClient

logger = logging.getLogger(__name__)

SIDE_EFFECT = "notification"


class Notifier:
    def __init__(self, client: Optional[ResendClient]) -> None:
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def notify_paid(self, *, kind: str, doc: Dict[str, Any]) -> SideEffectOutcome:
        to = doc.get("customer_email") if kind == "quote" else doc.get("contact_email")
        if self._client is None:
            return SideEffectOutcome(name=SIDE_EFFECT, skipped=True, detail="disabled")
        if not to:
            return SideEffectOutcome(name=SIDE_EFFECT, skipped=True, detail="no_recipient")

        if kind == "quote":
            amount = doc.get("revised_price") if doc.get("revised_price") is not None else doc.get("price")
            subject = "Your trade-in has been paid"
            text = f"Payment of {amount} for {doc.get('device_name') or 'your device'} has been sent. Ref {doc['id']}."
        else:
            amount = doc.get("total_final") if doc.get("total_final") is not None else doc.get("total_indicative")
            subject = "Your bulk trade-in has been paid"
            text = f"Payment of {amount} for {doc.get('total_devices', 0)} devices has been sent. Ref {doc['id']}."

        try:
            await self._client.send(to=str(to), subject=subject, text=text)
        except httpx.HTTPError as exc:
            logger.warning("notify_paid:failed kind=%s id=%s err=%s", kind, doc.get("id"), exc)
            err = BestEffortError(SIDE_EFFECT, str(exc) or exc.__class__.__name__)
            return SideEffectOutcome(name=SIDE_EFFECT, ok=False, error=err)

        logger.info("notify_paid:sent kind=%s id=%s", kind, doc.get("id"))
        return SideEffectOutcome(name=SIDE_EFFECT, detail="sent")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def build_notifier() -> Notifier:
    if not config.resend_api_key:
        logger.info("notifier:disabled (RESEND_API_KEY not set)")
        return Notifier(None)

    return Notifier(
        ResendClient(
            api_key=config.resend_api_key,
            api_url=config.resend_api_url,
            sender=config.email_from,
            timeout_seconds=config.notify_timeout_seconds,
        )
    )


async def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier
