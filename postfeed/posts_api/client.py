# postfeed/posts_api/client.py
#
#
# Imports
import json
import logging
from typing import Optional, Dict, Any, List
#
# 3rd-party Libraries
import httpx
#
# Local Imports
from .schemas import RawPost
from .exceptions import APIConnectionError, APIRequestError, APIResponseError
from ..Constants import (
    DEFAULT_API_TIMEOUT, POSTS_ENDPOINT, PAGE_QUERY_PARAM, LIMIT_QUERY_PARAM, DEFAULT_PAGE_SIZE
)
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


class PostsAPIClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_API_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._transport = transport  # Lets tests plug in httpx.MockTransport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"

        try:
            response = await client.request(method, endpoint, params=params)
            response.raise_for_status()  # Raises HTTPStatusError for 4xx/5xx
            return response.json()
        except httpx.HTTPStatusError as e:
            error_detail = e.response.reason_phrase or str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict) and isinstance(response_data.get("detail"), str):
                    error_detail = response_data["detail"]
            except ValueError:
                pass  # Body was not JSON; keep the reason phrase
            raise APIResponseError(e.response.status_code, error_detail, response_data=response_data) from e
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise APIConnectionError(f"Connection error to {url}: {e}") from e
        except json.JSONDecodeError as e:
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text}) from e

    async def fetch_page(self, page: int, page_size: int = DEFAULT_PAGE_SIZE) -> List[RawPost]:
        """
        Fetches one page of posts.

        Args:
            page: 1-based page number.
            page_size: Number of posts the server should return at most.

        Returns:
            The page's items as RawPost objects, in server order. Items are not
            validated here.

        Raises:
            APIConnectionError: The server could not be reached.
            APIResponseError: Non-2xx status or an undecodable body.
            APIRequestError: The body decoded but is not a JSON list.
        """
        params = {PAGE_QUERY_PARAM: page, LIMIT_QUERY_PARAM: page_size}
        logger.debug(f"Fetching posts page {page} (size {page_size}) from {self.base_url}{POSTS_ENDPOINT}")
        payload = await self._request("GET", POSTS_ENDPOINT, params=params)
        if not isinstance(payload, list):
            raise APIRequestError(f"Expected a JSON list of posts, got {type(payload).__name__}",
                                  response_data=payload)
        logger.debug(f"Received {len(payload)} items for page {page}")
        return [RawPost.from_json(item) for item in payload]

#
# End of client.py
########################################################################################################################
