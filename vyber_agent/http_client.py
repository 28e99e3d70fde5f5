from __future__ import annotations

import json
import ssl
import urllib.parse
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener, urlopen

from .config import BrowserConfig

USER_AGENT = "VybeR Agent/1.0"


class HttpClientError(Exception):
    pass


class HttpStatusError(HttpClientError):
    """Non-2xx response; keeps status and body for diagnostics."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status} - {body}")
        self.status = status
        self.body = body


class _SafeRedirectHandler(HTTPRedirectHandler):
    def __init__(self, config: BrowserConfig) -> None:
        super().__init__()
        self._config = config

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        # urllib may pass relative URLs here; normalize against the previous URL.
        absolute = urllib.parse.urljoin(req.full_url, str(newurl))
        parsed = urllib.parse.urlparse(absolute)
        if parsed.scheme not in ("http", "https"):
            raise HttpClientError("Only http/https are supported (redirect)")
        if not self._config.is_host_allowed(parsed.hostname or ""):
            raise HttpClientError(f"Host {parsed.hostname} is not in allowlist (redirect)")
        return super().redirect_request(req, fp, code, msg, headers, absolute)


def ensure_allowed(url: str, config: BrowserConfig) -> None:
    """Strict allowlist check for HTTP(S) fetches."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    if not config.is_host_allowed(parsed.hostname or ""):
        raise HttpClientError(f"Host {parsed.hostname} is not in allowlist")


def http_get(url: str, config: BrowserConfig) -> dict[str, object]:
    ensure_allowed(url, config)
    req = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        ctx = ssl.create_default_context()
        opener = build_opener(_SafeRedirectHandler(config), HTTPSHandler(context=ctx))
        with opener.open(req, timeout=config.http_timeout) as resp:
            body = resp.read(config.http_max_bytes + 1)
            truncated = len(body) > config.http_max_bytes
            if truncated:
                body = body[: config.http_max_bytes]
            return {
                "status": resp.status,
                "url": resp.geturl(),
                "headers": dict(resp.headers),
                "body": body.decode(errors="replace"),
                "truncated": truncated,
            }
    except HTTPError as exc:
        raise HttpStatusError(exc.code, exc.read().decode(errors="replace")) from exc
    except (TimeoutError, URLError) as exc:
        raise HttpClientError(str(exc)) from exc


def http_post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    timeout: float = 120.0,
) -> Any:
    """POST a JSON body and decode the JSON response.

    Raises HttpStatusError for non-2xx responses and HttpClientError for
    transport failures or an undecodable body.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError(f"Unsupported endpoint URL: {url}")
    data = json.dumps(payload, ensure_ascii=False).encode()
    req = Request(url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")
    req.add_header("User-Agent", USER_AGENT)
    for key, value in (headers or {}).items():
        req.add_header(key, value)
    try:
        with urlopen(req, timeout=timeout, context=ssl.create_default_context()) as resp:
            raw = resp.read()
    except HTTPError as exc:
        raise HttpStatusError(exc.code, exc.read().decode(errors="replace")) from exc
    except (TimeoutError, URLError) as exc:
        raise HttpClientError(str(exc)) from exc
    try:
        return json.loads(raw.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HttpClientError(f"Invalid JSON response: {exc}") from exc
