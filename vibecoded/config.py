"""Configuration management for the registry."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_TRIVY_BIN = "trivy"


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # GitHub credential (optional; only raises the rate limit ceiling)
    github_token: str = ""

    # Refresh-all worker pool
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    # External vulnerability/secret scanner
    trivy_bin: str = DEFAULT_TRIVY_BIN

    log_level: str = "INFO"

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    @property
    def denylist_path(self) -> Path:
        return self.data_dir / "denied.json"


def _load_settings(config_dir: Path) -> dict:
    """Load the optional settings overlay from config/settings.yaml."""
    path = config_dir / "settings.yaml"
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load settings overlay %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings overlay %s: expected a mapping", path)
        return {}

    settings: dict = {}
    if "max_concurrency" in data:
        try:
            settings["max_concurrency"] = int(data["max_concurrency"])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid max_concurrency in %s: %r", path, data["max_concurrency"])
    if isinstance(data.get("trivy_bin"), str):
        settings["trivy_bin"] = data["trivy_bin"].strip()
    if isinstance(data.get("data_dir"), str) and data["data_dir"].strip():
        settings["data_dir"] = Path(data["data_dir"].strip())
    return settings


def load_config() -> Config:
    """Load configuration from environment variables and the settings overlay."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    settings = _load_settings(config_dir)

    return Config(
        github_token=os.getenv("GITHUB_TOKEN", "").strip(),
        max_concurrency=settings.get(
            "max_concurrency",
            int(os.getenv("MAX_CONCURRENCY", str(DEFAULT_MAX_CONCURRENCY))),
        ),
        trivy_bin=settings.get("trivy_bin", os.getenv("TRIVY_BIN", DEFAULT_TRIVY_BIN)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        data_dir=settings.get("data_dir", Path(os.getenv("DATA_DIR", "./data"))),
        config_dir=config_dir,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.max_concurrency < 1:
        errors.append("MAX_CONCURRENCY must be at least 1")
    if not (config.trivy_bin or "").strip():
        errors.append("TRIVY_BIN must not be empty")

    if not config.github_token:
        # Unauthenticated requests still work, with a much lower rate limit.
        logger.warning("No GITHUB_TOKEN configured; GitHub rate limits will be strict")

    return errors
