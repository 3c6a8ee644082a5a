from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

_logger = logging.getLogger(__name__)


class TransportError(Exception):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


def request_json(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Any:
    """Send a blocking JSON request and decode the JSON response body.

    Transport failures, HTTP error statuses and undecodable bodies all raise
    TransportError; callers translate it into their own stage error.
    """
    if not url.startswith("https://") and not url.startswith("http://"):
        raise TransportError(f"unsupported URL scheme: {url}")
    data: Optional[bytes] = None
    request_headers = {"Accept": "application/json"}
    request_headers.update(headers or {})
    if payload is not None:
        data = json.dumps(payload, sort_keys=True).encode("utf-8")
        request_headers["Content-Type"] = "application/json"
    request = Request(url, data=data, headers=request_headers, method=method)
    _logger.debug("%s %s", method, url.split("?", 1)[0])
    try:
        with urlopen(request) as response:  # nosec B310 - scheme checked above
            body = response.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace").strip()
        raise TransportError(
            f"{method} {url.split('?', 1)[0]} returned HTTP {exc.code}: {detail}",
            status=exc.code,
        ) from exc
    except URLError as exc:
        raise TransportError(f"{method} {url.split('?', 1)[0]} failed: {exc.reason}") from exc
    try:
        return json.loads(body.decode("utf-8"))
    except ValueError as exc:
        raise TransportError(f"response from {url.split('?', 1)[0]} is not JSON: {exc}") from exc
