"""HTTP client for the todo analysis service.

Every call re-sends the complete document text; nothing is cached and nothing
is diffed against earlier calls.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Optional

import httpx

from sibylx.app.preview import PreviewPayload

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"\r?\n")


class ServiceError(Exception):
    """A call to the analysis service failed.

    ``status_code`` is None when no response arrived at all; ``transport_error``
    holds the underlying exception for transport failures.
    """

    def __init__(
        self,
        endpoint: str,
        status_code: Optional[int] = None,
        transport_error: Optional[BaseException] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.transport_error = transport_error
        self.detail = detail
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.detail:
            return self.detail
        status = self.status_code if self.status_code is not None else "-"
        return f"HTTP {status} {self.transport_error or ''}".rstrip()


def encode_text(text: str) -> bytes:
    return base64.b64encode(text.encode("utf-8"))


def split_lines(body: str) -> list[str]:
    lines = _LINE_SPLIT.split(body)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


class AnalysisClient:
    """Thin wrapper over the service endpoints (/format, /folding, /preview, /clean, /trash)."""

    def __init__(
        self,
        rest_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.rest_url = rest_url.rstrip("/")
        self._http = httpx.Client(base_url=self.rest_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AnalysisClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _post(self, endpoint: str, text: Optional[str] = None) -> httpx.Response:
        headers = None
        content = None
        if text is not None:
            headers = {"content-type": "text/plain"}
            content = encode_text(text)
        try:
            resp = self._http.post(endpoint, content=content, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("POST %s%s failed: %s", self.rest_url, endpoint, exc)
            raise ServiceError(endpoint, transport_error=exc) from exc
        if resp.status_code != 200:
            logger.warning("POST %s%s returned HTTP %s", self.rest_url, endpoint, resp.status_code)
            raise ServiceError(endpoint, status_code=resp.status_code)
        return resp

    def _post_lines(self, endpoint: str, text: str) -> list[str]:
        resp = self._post(endpoint, text)
        if not resp.text:
            raise ServiceError(endpoint, status_code=resp.status_code, detail="No response body")
        return split_lines(resp.text)

    def format_todos(self, text: str) -> list[str]:
        """Return the ``start,end,category`` lines for ``text``."""
        return self._post_lines("/format", text)

    def fold_todos(self, text: str) -> list[str]:
        """Return the ``startLine-endLine`` lines for ``text``."""
        return self._post_lines("/folding", text)

    def preview_todos(self, text: str) -> PreviewPayload:
        resp = self._post("/preview", text)
        if not resp.content:
            raise ServiceError("/preview", status_code=resp.status_code, detail="No response body")
        try:
            return PreviewPayload.from_json(resp.json())
        except ValueError as exc:
            raise ServiceError("/preview", status_code=resp.status_code, detail=f"Invalid preview: {exc}") from exc

    def clean_todos(self) -> None:
        """Ask the service to move done moments to the end of the todo file."""
        self._post("/clean")

    def trash_todos(self) -> None:
        """Ask the service to move done moments into the trash file."""
        self._post("/trash")
