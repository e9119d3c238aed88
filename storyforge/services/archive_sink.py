"""
Archive sink for finalized rounds.

Posts {sessionId, content, round} to an HTTP endpoint. Delivery is best
effort: failures are logged and never reach the workflow.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class HttpArchiveSink:
    """Best-effort HTTP archive for finalized round text."""

    def __init__(
        self,
        url: Optional[str],
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def archive(self, session_id: str, content: str, round_number: int) -> bool:
        """Returns True when the endpoint accepted the post."""
        if not self.enabled:
            return False

        payload = {"sessionId": session_id, "content": content, "round": round_number}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"[archive] Round {round_number} of {session_id} not archived: {e}")
            return False

        logger.debug(f"[archive] Round {round_number} of {session_id} archived")
        return True
