"""
Configuration for Chat Labs
============================

Environment-driven settings for the completion client, the CRM gateway,
image generation/composition and local storage.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


CHAT_DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful corporate AI assistant. "
    "Answer in the language the user writes in, and format answers in Markdown."
)


class LLMConfig(BaseModel):
    """Configuration for the chat completion client."""
    api_key: str = ""
    base_url: Optional[str] = None
    azure_endpoint: Optional[str] = None
    azure_api_version: str = "2025-04-01-preview"
    default_model: str = "gpt-5"
    max_tool_rounds: int = 5

    @property
    def use_azure(self) -> bool:
        return bool(self.azure_endpoint)


class CrmConfig(BaseModel):
    """Configuration for the CRM direct-answer path."""
    extension_id: str = ""
    gateway_url: str = ""
    engine: str = "nl2query"
    mode: str = "records"
    chat_model: Optional[str] = None
    timeout: float = 30.0
    max_result_chars: int = 12000


class ImageConfig(BaseModel):
    """Configuration for image generation and text overlay composition."""
    project_id: str = "chat-labs"
    location: str = "us-central1"
    model: str = "imagen-3.0-generate-002"
    fast_model: str = "imagen-3.0-fast-generate-001"
    generation_timeout: float = 90.0
    compose_url: str = "http://localhost:8090"
    compose_timeout: float = 60.0
    public_image_url: Optional[str] = None


class StorageConfig(BaseModel):
    """Configuration for local JSON/file stores."""
    data_dir: Path = Field(default_factory=lambda: Path("data"))
    persist_overlay_state: bool = False


class Settings(BaseModel):
    """All settings groups."""
    llm: LLMConfig = Field(default_factory=LLMConfig)
    crm: CrmConfig = Field(default_factory=CrmConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_settings() -> Settings:
    """Build settings from environment variables."""
    llm = LLMConfig(
        api_key=_env("AZURE_OPENAI_API_KEY") or _env("OPENAI_API_KEY"),
        base_url=_env("OPENAI_BASE_URL") or None,
        azure_endpoint=_env("AZURE_OPENAI_ENDPOINT").rstrip("/") or None,
        azure_api_version=_env("AZURE_OPENAI_API_VERSION", "2025-04-01-preview"),
        default_model=resolve_default_model(),
    )
    crm = CrmConfig(
        extension_id=_env("CRM_EXTENSION_ID"),
        gateway_url=_env("CRM_GATEWAY_URL").rstrip("/"),
        engine=_env("CRM_GATEWAY_ENGINE", "nl2query"),
        mode=_env("CRM_GATEWAY_MODE", "records"),
        chat_model=_env("CRM_CHAT_MODEL") or _env("CRM_MODEL") or None,
        timeout=_env_float("CRM_GATEWAY_TIMEOUT", 30.0),
    )
    image = ImageConfig(
        project_id=_env("VERTEX_PROJECT_ID", "chat-labs"),
        location=_env("VERTEX_LOCATION", "us-central1"),
        model=_env("IMAGE_MODEL", "imagen-3.0-generate-002"),
        fast_model=_env("IMAGE_FAST_MODEL", "imagen-3.0-fast-generate-001"),
        generation_timeout=_env_float("IMAGE_TIMEOUT_SECONDS", 90.0),
        compose_url=_env("COMPOSE_SERVICE_URL", "http://localhost:8090").rstrip("/"),
        public_image_url=_env("PUBLIC_IMAGE_URL") or None,
    )
    storage = StorageConfig(
        data_dir=Path(_env("DATA_DIR", "data")),
        persist_overlay_state=_env("PERSIST_OVERLAY_STATE").lower() in ("1", "true", "yes"),
    )
    return Settings(llm=llm, crm=crm, image=image, storage=storage)


def resolve_default_model(thread_model: Optional[str] = None) -> str:
    """Resolve the general chat model: thread override, then env chain."""
    for candidate in (
        thread_model,
        os.getenv("OPENAI_CHAT_MODEL"),
        os.getenv("AZURE_OPENAI_CHAT_MODEL"),
        os.getenv("OPENAI_MODEL"),
        os.getenv("AZURE_OPENAI_MODEL"),
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    return "gpt-5"
