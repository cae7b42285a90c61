"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash"

# Environment variable -> AppConfig field
_ENV_OVERRIDES = {
    "WIKIRAG_DATA_DIR": "data_dir",
    "WIKIRAG_LOG_DIR": "log_dir",
    "DATASET_NAME": "dataset_name",
    "GEMINI_MODEL_QA": "qa_model",
    "GEMINI_MODEL_TEXT_IMAGE_GENERATION": "vision_model",
    "AZ_ORG": "azure_org",
    "AZ_PROJECT": "azure_project",
    "AZ_PAT": "azure_pat",
    "WIKI_ID": "wiki_id",
    "API_VERSION": "api_version",
    "AZ_CLIENT_URL": "wiki_api_url",
    "IMAGE_REPO_URL": "image_repo_url",
    "SLACK_SIGNING_SECRET": "slack_signing_secret",
}


@dataclass(slots=True)
class AppConfig:
    data_dir: Path = Path("config")
    log_dir: Path | None = Path("logs")
    dataset_name: str = "IT_Wiki"
    api_key: str = ""
    qa_model: str = DEFAULT_MODEL
    rewrite_model: str = DEFAULT_MODEL
    vision_model: str = "gemini-2.5-flash-lite"

    batch_chars: int = 20000
    batch_timeout: float = 180.0
    batch_cooldown: float = 5.0
    min_document_chars: int = 20

    metadata_max_len: int = 255
    metadata_max_groups: int = 15

    slack_max_message_size: int = 2800
    slack_min_break: int = 2000
    slack_signing_secret: str = ""
    rate_limit: int = 10
    rate_window: float = 60.0

    azure_org: str = ""
    azure_project: str = ""
    azure_pat: str = ""
    wiki_id: str = ""
    api_version: str = "7.1-preview.1"
    wiki_api_url: str = ""
    image_repo_url: str = ""

    @classmethod
    def from_env(cls, **overrides: object) -> "AppConfig":
        """Build a config from the environment, with explicit overrides winning."""
        load_dotenv()
        values: dict[str, object] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = Path(raw) if field_name.endswith("_dir") else raw
        api_key = os.environ.get("API_KEY") or os.environ.get("GEMINI_API_KEY")
        if api_key:
            values["api_key"] = api_key
        if "vision_model" in values:
            values["rewrite_model"] = values["vision_model"]
        known = {f.name for f in fields(cls)}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return cls(**values)  # type: ignore[arg-type]

    @property
    def files_dir(self) -> Path:
        return Path(self.data_dir) / "wiki-files"

    @property
    def images_dir(self) -> Path:
        return Path(self.data_dir) / "wiki-images"

    @property
    def hash_cache_path(self) -> Path:
        return Path(self.data_dir) / "image-hash-cache.json"

    @property
    def synonyms_path(self) -> Path:
        return Path(self.data_dir) / "synonyms.json"
