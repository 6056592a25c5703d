"""Configuration loader for the job sync pipeline.

Reads config.yaml into typed configuration objects and picks up API
credentials from the environment (a local .env file is honoured).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass
class SourceConfig:
    """Configuration for a single source adapter."""

    name: str
    scraper_type: str  # "adzuna", "greenhouse" or "lever"
    enabled: bool = True
    keywords: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Credentials:
    """API credentials. Anything left empty disables the feature using it."""

    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    webflow_api_token: str = ""
    webflow_collection_id: str = ""
    webflow_site_id: str = ""
    pdl_api_key: str = ""

    @property
    def has_adzuna(self) -> bool:
        return bool(self.adzuna_app_id and self.adzuna_app_key)

    @property
    def has_webflow(self) -> bool:
        return bool(
            self.webflow_api_token
            and self.webflow_collection_id
            and self.webflow_site_id
        )

    @property
    def has_pdl(self) -> bool:
        return bool(self.pdl_api_key)


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    data_dir: str = "data"
    log_level: str = "INFO"
    request_timeout_seconds: float = 30.0
    user_agent: str = "jobsync/1.0 (+https://github.com/jobsync)"
    firm_registry: str = ""
    use_detected_boards: bool = True
    credentials: Credentials = field(default_factory=Credentials)

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]


def load_credentials(env_file: Path | str | None = None) -> Credentials:
    """Read credentials from the environment after loading .env, if any."""
    load_dotenv(env_file)
    return Credentials(
        adzuna_app_id=os.getenv("ADZUNA_APP_ID", ""),
        adzuna_app_key=os.getenv("ADZUNA_APP_KEY", ""),
        webflow_api_token=os.getenv("WEBFLOW_API_TOKEN", ""),
        webflow_collection_id=os.getenv("WEBFLOW_COLLECTION_ID", ""),
        webflow_site_id=os.getenv("WEBFLOW_SITE_ID", ""),
        pdl_api_key=os.getenv("PDL_API_KEY", ""),
    )


def load_config(path: Path | str | None = None) -> PipelineConfig:
    """Load the pipeline configuration from a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    credentials = load_credentials()

    if not config_path.exists():
        logger.warning("Config file not found at %s; using defaults", config_path)
        return PipelineConfig(credentials=credentials)

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return PipelineConfig(credentials=credentials)

    sources = []
    for src in raw.get("sources", []):
        sources.append(
            SourceConfig(
                name=src["name"],
                scraper_type=src["scraper_type"],
                enabled=src.get("enabled", True),
                keywords=src.get("keywords", []),
                params=src.get("params", {}),
            )
        )

    return PipelineConfig(
        sources=sources,
        data_dir=raw.get("data_dir", "data"),
        log_level=raw.get("log_level", "INFO"),
        request_timeout_seconds=raw.get("request_timeout_seconds", 30.0),
        user_agent=raw.get("user_agent", PipelineConfig.user_agent),
        firm_registry=raw.get("firm_registry", ""),
        use_detected_boards=raw.get("use_detected_boards", True),
        credentials=credentials,
    )
