"""
HTTP fetch capability.

Best-effort GET used by ``run_js_from_url``. Status and encoding checks are
the dispatcher's job; this layer only reports what came back.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from .errors import FetchError


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    def ok(self) -> bool:
        return 200 <= self.status < 300


class RequestsFetcher:
    """Fetcher backed by ``requests``."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self._timeout = timeout
        self._session = session or requests.Session()

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        try:
            r = self._session.get(url, headers=headers or {}, timeout=self._timeout)
        except requests.RequestException as e:
            raise FetchError(f"failed to fetch {url}: {e}") from e
        return HttpResponse(status=r.status_code, body=r.content, headers=dict(r.headers))
