"""
Outbound HTTP for webhook and Slack actions.

`timeout_ms` bounds the whole call. requests only applies its timeout to the
connect and to each socket read, so the body is streamed and checked against
a deadline as it arrives.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict

import requests

from .collaborators import HttpCallError, HttpClient, HttpResponse


logger = logging.getLogger("http_client")

# One byte per read: a larger read blocks until it is filled.
READ_CHUNK_BYTES = 1
MAX_BODY_BYTES = 64 * 1024


def _decode_body(content: bytes, encoding: str | None) -> Any:
    if not content:
        return None
    text = content.decode(encoding or "utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


class RequestsHttpClient(HttpClient):
    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()

    def call(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Any,
        timeout_ms: int,
    ) -> HttpResponse:
        timeout = max(timeout_ms, 1) / 1000.0
        deadline = time.monotonic() + timeout
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": timeout, "stream": True}
        if method.upper() == "GET":
            if body:
                kwargs["params"] = body
        else:
            kwargs["json"] = body
        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.Timeout as exc:
            raise HttpCallError(f"timeout of {timeout_ms}ms exceeded") from exc
        except requests.RequestException as exc:
            raise HttpCallError(f"request failed: {exc}") from exc

        try:
            content = self._read_body(response, deadline, timeout_ms)
        finally:
            response.close()
        logger.debug("HTTP %s %s -> %s", method.upper(), url, response.status_code)
        return HttpResponse(status=response.status_code, body=_decode_body(content, response.encoding))

    def _read_body(self, response: requests.Response, deadline: float, timeout_ms: int) -> bytes:
        chunks = bytearray()
        try:
            for chunk in response.iter_content(chunk_size=READ_CHUNK_BYTES):
                if time.monotonic() > deadline:
                    raise HttpCallError(f"timeout of {timeout_ms}ms exceeded")
                chunks.extend(chunk)
                if len(chunks) >= MAX_BODY_BYTES:
                    logger.warning("HTTP response truncated at %s bytes url=%s", MAX_BODY_BYTES, response.url)
                    break
        except requests.Timeout as exc:
            raise HttpCallError(f"timeout of {timeout_ms}ms exceeded") from exc
        except requests.RequestException as exc:
            raise HttpCallError(f"request failed: {exc}") from exc
        if time.monotonic() > deadline:
            raise HttpCallError(f"timeout of {timeout_ms}ms exceeded")
        return bytes(chunks)
