import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel

from dotenv import load_dotenv

from .errors import ConfigurationError

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "CHATPROXY_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}


class AppSettings(BaseModel):
    # Local OpenAI-compatible inference server
    inference_base_url: str = "http://127.0.0.1:8080/v1"
    default_model: str = "Ministral-3-8B-Reasoning-2512"
    inference_timeout_s: float = 120.0

    # Serper search provider
    serper_api_key: Optional[str] = None
    serper_base_url: Optional[str] = None
    search_timeout_s: float = 20.0
    search_default_results: int = 3
    search_results_ceiling: int = 5
    search_max_chars: int = 600

    parallel_tool_calls: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        if data.get("serper_api_key"):
            data["serper_api_key"] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "inference_base_url": os.getenv("INFERENCE_BASE_URL"),
        "default_model": os.getenv("DEFAULT_MODEL"),
        "inference_timeout_s": os.getenv("INFERENCE_TIMEOUT"),
        "serper_api_key": os.getenv("SERPER_API_KEY"),
        "serper_base_url": os.getenv("SERPER_BASE_URL"),
        "search_timeout_s": os.getenv("SEARCH_TIMEOUT"),
        "search_default_results": os.getenv("SEARCH_MAX_RESULTS"),
        "search_results_ceiling": os.getenv("SEARCH_RESULTS_CEILING"),
        "search_max_chars": os.getenv("SEARCH_MAX_CHARS"),
        "parallel_tool_calls": os.getenv("PARALLEL_TOOL_CALLS"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in ("inference_timeout_s", "search_timeout_s"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    for key in ("search_default_results", "search_results_ceiling", "search_max_chars", "port"):
        if key in cleaned:
            cleaned[key] = int(cleaned[key])
    if "parallel_tool_calls" in cleaned:
        cleaned["parallel_tool_calls"] = str(cleaned["parallel_tool_calls"]).lower() in ENV_OVERRIDE_TRUE
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Could not read {path}: {exc}") from exc
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    # Secrets are usually kept out of config.json; fall back to the environment.
    for key in ("serper_api_key", "serper_base_url"):
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    return AppSettings(**merged)



def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
