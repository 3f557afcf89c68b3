"""Dapp confirmation mail sent through the SendGrid v3 API."""

from __future__ import annotations

import logging

import httpx

from dappbot_engine.executor.retry import RetryingExecutor

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridEmailSender:
    """Sends transactional mail to dapp owners.

    Without an API key every send is logged and skipped.  With one, send
    failures propagate so the calling job can fail.
    """

    def __init__(
        self,
        api_key: str | None,
        http_client: httpx.AsyncClient,
        executor: RetryingExecutor,
        *,
        from_address: str,
    ) -> None:
        self._api_key = api_key or ""
        self._client = http_client
        self._executor = executor
        self._from_address = from_address

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if not self.enabled:
            logger.info("SendGrid not configured; skipping %r", subject, extra={"context": {"owner": to_address}})
            return
        payload = {
            "personalizations": [{"to": [{"email": to_address}]}],
            "from": {"email": self._from_address},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        async def _send() -> None:
            response = await self._client.post(SENDGRID_SEND_URL, json=payload, headers=headers)
            response.raise_for_status()

        await self._executor.run(_send)

    async def send_confirmation(self, owner_email: str, resource_name: str, dns_name: str) -> None:
        """Tell the owner their dapp is live at *dns_name*."""
        if not self.enabled:
            logger.info("SendGrid not configured; skipping confirmation", extra={"context": {"owner": owner_email}})
            return
        await self.send(
            owner_email,
            f"Your dapp {resource_name} is ready",
            f"{resource_name} has finished building and is now available at https://{dns_name}",
        )
        logger.info("Sent confirmation email", extra={"context": {"owner": owner_email, "resource": resource_name}})
