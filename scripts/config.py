"""Configuration for browser-relay."""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class Config:
    # Page defaults
    DEFAULT_NAVIGATION_TIMEOUT = 10_000  # ms, applied to every configured page
    NAVIGATE_TIMEOUT = 30_000  # ms, navigate tool
    USER_AGENT = USER_AGENT
    TAB_VIEWPORT = {"width": 1280, "height": 720}

    # Launch profile: "headless", "headed", or "" to pick from DOCKER_CONTAINER
    LAUNCH_PROFILE = os.getenv("BROWSER_RELAY_PROFILE", "")

    # Remote debugging
    DEFAULT_DEBUG_PORT = 9222
    DEBUG_HOST = os.getenv("BROWSER_RELAY_DEBUG_HOST", "127.0.0.1")
    DEBUG_DISCOVERY_TIMEOUT = 5.0  # seconds

    # Element extraction
    DEFAULT_MAX_ELEMENTS = 200
    DESCRIPTION_MAX_CHARS = 50
    TEXT_SELECTOR_MAX_CHARS = 30
    SNAPSHOT_TEXT_CHARS = 200  # trimmed text sent per element from the page

    # Evaluate gating
    EVALUATE_ENABLED = os.getenv("BROWSER_RELAY_EVALUATE", "1") == "1"
    MAX_RESPONSE_BYTES = 50_000

    # Server
    AUTH_TOKEN = os.getenv("BROWSER_RELAY_TOKEN", "")
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 8500
    LOG_LEVEL = os.getenv("BROWSER_RELAY_LOG_LEVEL", "INFO")


# ---------------------------------------------------------------------------
# Launch profiles (keyword arguments for chromium.launch)
# ---------------------------------------------------------------------------

_COMMON_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--disable-default-apps",
    "--disable-translate",
    "--disable-sync",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-ipc-flooding-protection",
]

LAUNCH_PROFILES: dict[str, dict[str, Any]] = {
    # Containers and CI: no display, no GPU
    "headless": {
        "headless": True,
        "args": _COMMON_ARGS + [
            "--disable-accelerated-2d-canvas",
            "--no-zygote",
            "--disable-gpu",
            "--disable-extensions",
            "--disable-web-security",
            "--disable-features=TranslateUI,VizDisplayCompositor",
            f"--user-agent={USER_AGENT}",
        ],
    },
    # Desktop with a display
    "headed": {
        "headless": False,
        "args": _COMMON_ARGS + [
            "--disable-features=TranslateUI",
            f"--user-agent={USER_AGENT}",
        ],
    },
}


def default_profile_name() -> str:
    if Config.LAUNCH_PROFILE:
        return Config.LAUNCH_PROFILE
    return "headless" if os.getenv("DOCKER_CONTAINER") else "headed"


def get_launch_profile(name: str | None = None) -> dict[str, Any]:
    """Return chromium.launch kwargs for a named profile.

    Falls back to default_profile_name() when name is None.
    The headed profile carries the process environment with DISPLAY
    defaulting to ':1'.
    """
    name = name or default_profile_name()
    if name not in LAUNCH_PROFILES:
        raise ValueError(
            f"Unknown launch profile '{name}'. Valid: {', '.join(sorted(LAUNCH_PROFILES))}"
        )
    profile = dict(LAUNCH_PROFILES[name])
    profile["args"] = list(profile["args"])
    if not profile["headless"]:
        env = dict(os.environ)
        env.setdefault("DISPLAY", ":1")
        profile["env"] = env
    return profile
