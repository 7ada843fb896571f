"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_index_prefix: str = _get_env("ES_INDEX_PREFIX", "parfumo")
    mapping_dir: str = _get_env("MAPPING_DIR", "mappings")
    perfumes_path: str = _get_env("PERFUMES_PATH", "perfumes.json")
    default_page_size: int = int(_get_env("DEFAULT_PAGE_SIZE", "20"))
    max_page_size: int = int(_get_env("MAX_PAGE_SIZE", "100"))
    credit_mismatch_policy: str = _get_env("CREDIT_MISMATCH_POLICY", "flag")
    load_on_startup: bool = _get_env("LOAD_ON_STARTUP", "false").lower() in {"1", "true", "yes"}
    log_level: str = _get_env("LOG_LEVEL", "INFO")

    @property
    def perfumes_index(self) -> str:
        return f"{self.es_index_prefix}-perfumes"

    def entity_index(self, kind: str) -> str:
        return f"{self.es_index_prefix}-{kind}s"


settings = Settings()
