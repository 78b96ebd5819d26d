import os
from dataclasses import dataclass
from functools import lru_cache

from app.model import DEFAULT_INPUT_NODE, DEFAULT_OUTPUT_NODE, NAMED, RESOLUTION_STRATEGIES


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a valid integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    model_path: str = "./frozen_graph.pb"
    class_list_path: str = "./class_list.txt"
    model_url: str | None = None
    class_list_url: str | None = None
    github_token: str | None = None
    hf_repo_id: str | None = None
    hf_token: str | None = None
    input_node: str = DEFAULT_INPUT_NODE
    output_node: str = DEFAULT_OUTPUT_NODE
    node_resolution: str = NAMED
    body_limit_mb: int = 5
    host: str = "127.0.0.1"
    port: int = 5020
    log_level: str = "INFO"

    @property
    def body_limit_bytes(self) -> int:
        return self.body_limit_mb * 1024 * 1024


def load_settings() -> Settings:
    port = _env_int("PORT", Settings.port)
    if not 0 <= port <= 65535:
        raise ValueError("PORT must be a valid number between 0 and 65535")
    body_limit_mb = _env_int("BODY_LIMIT_MB", Settings.body_limit_mb)
    if body_limit_mb <= 0:
        raise ValueError("BODY_LIMIT_MB must be positive")

    resolution = os.environ.get("NODE_RESOLUTION", NAMED).lower()
    if resolution not in RESOLUTION_STRATEGIES:
        raise ValueError(f"NODE_RESOLUTION must be one of {RESOLUTION_STRATEGIES}")

    return Settings(
        model_path=os.environ.get("MODEL_PATH", Settings.model_path),
        class_list_path=os.environ.get("CLASS_LIST_PATH", Settings.class_list_path),
        model_url=os.environ.get("MODEL_URL") or None,
        class_list_url=os.environ.get("CLASS_LIST_URL") or None,
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        hf_repo_id=os.environ.get("HF_REPO_ID") or None,
        hf_token=os.environ.get("HF_TOKEN") or None,
        input_node=os.environ.get("INPUT_NODE", DEFAULT_INPUT_NODE),
        output_node=os.environ.get("OUTPUT_NODE", DEFAULT_OUTPUT_NODE),
        node_resolution=resolution,
        body_limit_mb=body_limit_mb,
        host=os.environ.get("HOST", Settings.host),
        port=port,
        log_level=os.environ.get("LOG_LEVEL", Settings.log_level).upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
