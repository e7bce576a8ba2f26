"""
HTTP transport to the completion edge functions.

One 'complete' call is one POST. Retrying is the caller's business
('RetryPolicy'); this module only classifies what went wrong so the policy can
tell transient failures from permanent ones.
"""

import json

import aiohttp
from loguru import logger

from chat_lifecycle.completion.base import CompletionClient, CompletionRequest, NormalizedResponse, normalize_response
from chat_lifecycle.errors import CompletionRejectedError, NetworkError, ResponseFormatError

_TRANSIENT_STATUSES = {408, 429}


class HTTPCompletionClient(CompletionClient):
    """
    Completion client over 'aiohttp'.

    Attributes:
        base_url: Root of the edge functions, e.g. 'https://<project>.supabase.co/functions/v1'.
        chat_path: Endpoint used in chat mode.
        search_path: Endpoint used in search mode; it delegates to the retrieval agent.
        timeout: Upper bound for a single attempt, including reading the body.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        chat_path: str = "ai-chat",
        search_path: str = "react-search",
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.chat_path = chat_path
        self.search_path = search_path
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._http_session = http_session

    def url_for(self, is_search_mode: bool) -> str:
        return f"{self.base_url}/{self.search_path if is_search_mode else self.chat_path}"

    async def complete(
        self,
        request: CompletionRequest,
        access_token: str,
        is_search_mode: bool = False,
    ) -> NormalizedResponse:
        url = self.url_for(is_search_mode)
        body = request.to_search_body() if is_search_mode else request.to_chat_body()
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}

        logger.info(
            f"Calling {'search' if is_search_mode else 'chat'} endpoint with model {request.model} "
            f"({len(request.messages)} messages, room {request.room_id})"
        )
        logger.debug(
            f"clientMessageId={request.client_message_id} skipPersistence={request.skip_persistence}"
        )

        try:
            if self._http_session is not None:
                status, text = await self._post(self._http_session, url, body, headers)
            else:
                async with aiohttp.ClientSession(timeout=self.timeout) as http:
                    status, text = await self._post(http, url, body, headers)
        except TimeoutError as exc:
            raise NetworkError(f"Completion request to {url} timed out") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"Completion request to {url} failed: {exc}") from exc

        if status >= 500 or status in _TRANSIENT_STATUSES:
            logger.warning(f"Completion endpoint returned HTTP {status}")
            raise NetworkError(f"HTTP error! status: {status}", status=status)
        if status >= 400:
            logger.error(f"Completion endpoint rejected the request with HTTP {status}: {text[:200]}")
            raise CompletionRejectedError(f"HTTP error! status: {status}", status=status)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ResponseFormatError("Failed to parse JSON response") from exc

        response = normalize_response(payload, is_search_mode, request.model)
        logger.info(
            f"Completion received: {len(response.content)} chars, model {response.model}, "
            f"{len(response.citations or [])} citation(s)"
        )
        return response

    async def _post(
        self,
        http: aiohttp.ClientSession,
        url: str,
        body: dict,
        headers: dict[str, str],
    ) -> tuple[int, str]:
        async with http.post(url, json=body, headers=headers, timeout=self.timeout) as response:
            return response.status, await response.text()
