from __future__ import annotations

import logging
from typing import Any

import httpx

from services.bot.application.interfaces import WhatsappNotifier

LOGGER = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when the WhatsApp gateway rejects or never receives a message."""


class Msg91WhatsappNotifier(WhatsappNotifier):
    """Sends free-form WhatsApp text messages through MSG91."""

    def __init__(
        self,
        *,
        outbound_url: str,
        auth_key: str,
        integrated_number: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._outbound_url = outbound_url
        self._auth_key = auth_key
        self._integrated_number = integrated_number
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def send(self, address: str, text: str) -> dict[str, Any]:
        payload = {
            "integrated_number": self._integrated_number,
            "mobile": address,
            "message_type": "text",
            "message": text,
        }
        headers = {
            "accept": "application/json",
            "authkey": self._auth_key,
            "content-type": "application/json",
        }
        try:
            response = self._client.post(
                self._outbound_url, json=payload, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"MSG91 rejected message to {address}: "
                f"{exc.response.status_code} {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationError(
                f"Could not reach MSG91 for {address}: {exc}"
            ) from exc

        LOGGER.info("WhatsApp message sent to %s (%s)", address, response.status_code)
        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code}

    def close(self) -> None:
        self._client.close()
