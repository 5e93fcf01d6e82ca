import os
from urllib.parse import quote
from dataclasses import dataclass
from typing import Optional
import pathlib
import yaml
from dotenv import load_dotenv


REQUEST_ID_HEADER = "x-nf-request-id"
STREAM_PATH_PREFIX = "/.stream/"

DEFAULT_RELAY_BASE_URL = "https://ntl-functions-streaming.herokuapp.com"
DEFAULT_GRAPH_HOST = "graph.netlify.com"


@dataclass(frozen=True)
class Settings:
    relay_base_url: str
    relay_method: str
    connect_timeout: float
    invocation_timeout: float
    high_water_mark: int
    graph_host: str
    site_id: Optional[str]


def load_settings() -> Settings:
    if os.getenv("DOTENV_DISABLED", "false").lower() not in {"1", "true", "yes"}:
        load_dotenv()

    overrides = _load_overrides()
    relay = overrides.get("relay", {}) if isinstance(overrides.get("relay"), dict) else {}
    graph = overrides.get("graph", {}) if isinstance(overrides.get("graph"), dict) else {}

    base_url = os.getenv("STREAM_RELAY_BASE_URL") or relay.get("base_url") or DEFAULT_RELAY_BASE_URL
    method = os.getenv("STREAM_RELAY_METHOD") or relay.get("method") or "POST"
    return Settings(
        relay_base_url=str(base_url).rstrip("/"),
        relay_method=str(method).upper(),
        connect_timeout=_number("STREAM_CONNECT_TIMEOUT", relay.get("connect_timeout"), 10.0),
        invocation_timeout=_number("STREAM_INVOCATION_TIMEOUT", relay.get("invocation_timeout"), 26.0),
        high_water_mark=int(_number("STREAM_HIGH_WATER_MARK", relay.get("high_water_mark"), 16)),
        graph_host=os.getenv("GRAPH_HOST") or graph.get("host") or DEFAULT_GRAPH_HOST,
        site_id=os.getenv("SITE_ID") or graph.get("site_id"),
    )


def relay_url(settings: Settings, request_id: str) -> str:
    return f"{settings.relay_base_url}{STREAM_PATH_PREFIX}{quote(request_id, safe='')}"


def _number(env_name: str, fallback, default: float) -> float:
    raw = os.getenv(env_name)
    if raw is None:
        raw = fallback
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _load_overrides() -> dict:
    # Look for streamer.yml in backend root (parent of function_streamer/)
    backend_root = pathlib.Path(__file__).resolve().parents[1]
    config_path = pathlib.Path(os.getenv("STREAMER_CONFIG", backend_root / "streamer.yml"))
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                return {}
            return data
    except (OSError, yaml.YAMLError):
        return {}
