from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Prefer Chromium for better CDP compatibility.
    # Snap builds ignore --user-data-dir, so they come last.
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_PROXY_URL = "http://localhost:8888/.netlify/functions/claude-proxy"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
ANTHROPIC_VERSION = "2023-06-01"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class BrowserConfig:
    """Settings for the native (CDP-driven) browser."""

    binary_path: str
    profile_path: str
    cdp_port: int = 9222
    headless: bool = False
    window_size: str = "1280,900"
    extra_flags: list[str] = field(default_factory=list)
    allow_hosts: list[str] = field(default_factory=list)
    http_timeout: float = 30.0
    http_max_bytes: int = 2_000_000
    screenshot_max_width: int = 1280

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("VYBER_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @classmethod
    def from_env(cls) -> BrowserConfig:
        profile = expand_path(os.environ.get("VYBER_BROWSER_PROFILE", "~/.vyber/agent-profile"))
        port = int(os.environ.get("VYBER_BROWSER_PORT", "9222"))
        flags_raw = os.environ.get("VYBER_BROWSER_FLAGS", "")
        extra_flags = [flag.strip() for flag in flags_raw.split(",") if flag.strip()]
        allow_raw = os.environ.get("VYBER_ALLOW_HOSTS", "")
        allow_hosts = [host.strip().lower() for host in allow_raw.split(",") if host.strip() and host.strip() != "*"]
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=profile,
            cdp_port=port,
            headless=_env_flag("VYBER_HEADLESS"),
            window_size=os.environ.get("VYBER_WINDOW_SIZE", "1280,900"),
            extra_flags=extra_flags,
            allow_hosts=allow_hosts,
            http_timeout=float(os.environ.get("VYBER_HTTP_TIMEOUT", "30")),
            http_max_bytes=int(os.environ.get("VYBER_HTTP_MAX_BYTES", "2000000")),
            screenshot_max_width=int(os.environ.get("VYBER_SCREENSHOT_MAX_WIDTH", "1280")),
        )

    def is_host_allowed(self, host: str) -> bool:
        host = (host or "").strip().lower().rstrip(".")
        if not self.allow_hosts:
            return True
        for raw_allowed in self.allow_hosts:
            allowed = (raw_allowed or "").strip().lower().lstrip(".").rstrip(".")
            if not allowed:
                continue
            if host == allowed:
                return True
            if host.endswith("." + allowed):
                return True
        return False


@dataclass
class AgentConfig:
    """Settings for one orchestrator: reasoning service access and loop bounds."""

    api_key: str | None = None
    proxy_url: str = DEFAULT_PROXY_URL
    api_url: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    max_iterations: int = 15
    request_timeout: float = 120.0
    post_action_delay: float = 1.0
    native_host: bool = False

    @property
    def direct(self) -> bool:
        """True when requests go straight to the provider with a key."""
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return self.api_url if self.direct else self.proxy_url

    @classmethod
    def from_env(cls) -> AgentConfig:
        api_key = os.environ.get("VYBER_API_KEY") or os.environ.get("ANTHROPIC_API_KEY") or None
        return cls(
            api_key=api_key,
            proxy_url=os.environ.get("VYBER_PROXY_URL", DEFAULT_PROXY_URL),
            api_url=os.environ.get("VYBER_API_URL", DEFAULT_API_URL),
            model=os.environ.get("VYBER_MODEL", DEFAULT_MODEL),
            max_tokens=int(os.environ.get("VYBER_MAX_TOKENS", "4096")),
            max_iterations=int(os.environ.get("VYBER_MAX_ITERATIONS", "15")),
            request_timeout=float(os.environ.get("VYBER_REQUEST_TIMEOUT", "120")),
            post_action_delay=float(os.environ.get("VYBER_POST_ACTION_DELAY", "1.0")),
            native_host=_env_flag("VYBER_NATIVE_HOST"),
        )
