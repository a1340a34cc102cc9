from __future__ import annotations

import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class FilterRule(BaseModel):
    """A single quality threshold applied by the demo pipeline."""

    value: float
    rule: str


class FilterRules(BaseModel):
    """Quality thresholds for candidate products."""

    min_price: FilterRule = FilterRule(value=10.0, rule="Price > $10 (filter accessories)")
    min_rating: FilterRule = FilterRule(value=3.0, rule="Rating >= 3.0 stars")
    min_reviews: FilterRule = FilterRule(value=50, rule="At least 50 reviews")


class DemoConfig(BaseModel):
    """Configuration for the product matching demo pipeline."""

    model: Optional[str] = None
    catalog_path: Optional[str] = None
    filters: FilterRules = FilterRules()


class GlassboxConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    flush_timeout: float = Field(default=5.0, gt=0)
    demo: DemoConfig = DemoConfig()


CONFIG_ENV = "GLASSBOX_CONFIG"
DEFAULT_CONFIG_PATH = "glassbox.yaml"
# checked in order; the first one set wins
DATABASE_URL_ENVS = ("GLASSBOX_DATABASE_URL", "DATABASE_URL")


def database_url_from_env() -> Optional[str]:
    for name in DATABASE_URL_ENVS:
        value = os.getenv(name)
        if value:
            return value
    return None


def load_config(path: Optional[str] = None) -> GlassboxConfig:
    """Load glassbox settings.

    The YAML file is taken from ``path``, the ``GLASSBOX_CONFIG`` variable or
    ``glassbox.yaml`` in the working directory; a missing file means
    defaults. A database URL from the environment replaces the file's
    ``database_url`` so a single run can be pointed at another store.
    """

    config_path = path or os.getenv(CONFIG_ENV, DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = GlassboxConfig(**data)
        logger.debug(f"Loaded glassbox config from {config_path}")
    else:
        config = GlassboxConfig()

    env_db_url = database_url_from_env()
    if env_db_url:
        config.database_url = env_db_url
    return config
