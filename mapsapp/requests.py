"""
Low-level HTTP request library for MapsApp backend communication.
This module handles all HTTP requests with automatic retry logic and proper error handling.
"""
import asyncio
import logging
import aiohttp

from mapsapp.const import API_BASE_URL, REQUEST_TIMEOUT, REQUEST_ATTEMPTS


_LOGGER = logging.getLogger(__name__)


class ApiResponseError(Exception):
    """Exception raised when the backend answers with a non-2xx status."""
    def __init__(self, status: int, error_json: dict | list | None):
        self.status = status
        self.error_json = error_json
        super().__init__(f"API Error (HTTP {status}): {error_json}")

    def user_message(self) -> str | None:
        """Return the backend's ``message`` or ``error`` text, if any."""
        if isinstance(self.error_json, dict):
            for key in ("message", "error"):
                value = self.error_json.get(key)
                if isinstance(value, str) and value:
                    return value
        return None


def build_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


async def check_backend_availability(base_url: str = API_BASE_URL, timeout: int = 15) -> bool:
    """
    Check if the backend is reachable by sending a HEAD request.

    Args:
        base_url: Backend root URL
        timeout: Timeout in seconds for the HEAD request

    Returns:
        True if the backend answers with a status below 500, False otherwise
    """
    try:
        timeout_config = aiohttp.ClientTimeout(total=timeout)
        session = aiohttp.ClientSession(timeout=timeout_config)

        try:
            async with session.head(base_url) as response:
                if response.status >= 500:
                    _LOGGER.warning("Backend is not reachable (status %s)", response.status)
                    return False
                return True
        finally:
            await session.close()

    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while checking backend URL")
        return False
    except aiohttp.ClientError as e:
        _LOGGER.error("Error while checking backend availability: %s", e)
        return False


async def make_request(
    method: str,
    url: str,
    headers: dict | None = None,
    payload: dict = None,
    params: dict = None,
    timeout: int = REQUEST_TIMEOUT,
    max_attempts: int = REQUEST_ATTEMPTS,
):
    """
    Make an HTTP request with automatic retry on timeout.

    Args:
        method: HTTP method (GET, POST, PUT, etc.)
        url: Target URL for the request
        headers: HTTP headers dictionary
        payload: JSON payload for POST/PUT requests (optional)
        params: URL query parameters (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of attempts; 1 disables retrying

    Returns:
        Parsed JSON response

    Raises:
        asyncio.TimeoutError: If all attempts time out
        ApiResponseError: If the backend answers with a non-2xx status
        ValueError: If response has unexpected content type
    """
    method = method.upper()
    headers = {"accept": "application/json", **(headers or {})}

    for attempt in range(max_attempts):
        try:
            # Create session with timeout that increases with each attempt
            timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
            session = aiohttp.ClientSession(timeout=timeout_config)

            try:
                if method == "GET":
                    response = await session.get(url, headers=headers, params=params)
                elif method == "POST":
                    response = await session.post(url, headers=headers, json=payload, params=params)
                elif method == "PUT":
                    response = await session.put(url, headers=headers, json=payload, params=params)
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")

                return await _process_response(response, url)
            finally:
                await session.close()

        except (asyncio.TimeoutError, TimeoutError):
            if attempt < max_attempts - 1:
                _LOGGER.debug("Timeout on %s %s (attempt %s), retrying", method, url, attempt + 1)
                continue
            _LOGGER.warning(
                "Timeout on %s request to %s after %s attempts",
                method, url, max_attempts
            )
            raise

    return None


async def _process_response(response, url: str):
    """
    Process HTTP response and extract JSON data.

    Args:
        response: aiohttp response object
        url: Request URL (for logging)

    Returns:
        Parsed JSON response

    Raises:
        ValueError: If response has unexpected content type
        ApiResponseError: For any non-2xx status
    """
    content_type = response.headers.get('Content-Type', '')

    if 200 <= response.status < 300:
        if 'application/json' in content_type:
            return await response.json()
        _LOGGER.warning(
            "Unexpected content type in successful response: %s (status %s) from %s",
            content_type, response.status, url
        )
        text = await response.text()
        raise ValueError(f"Expected JSON but got {content_type}: {text[:200]}")

    # Error bodies have no guaranteed shape
    error_json = None
    if 'application/json' in content_type:
        try:
            error_json = await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            _LOGGER.debug("Failed to parse error body from %s: %s", url, e)
    else:
        text = await response.text()
        _LOGGER.debug(
            "Received non-JSON error response from %s: status %s, content-type: %s, body preview: %s",
            url, response.status, content_type, text[:200]
        )
    raise ApiResponseError(response.status, error_json)
