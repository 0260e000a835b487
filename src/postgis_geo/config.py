"""
Service configuration.

Reads the YAML file named by the FEATURESERVER_CONFIG env var
(default config/featureserver.yml); a missing file means defaults.

Supports ${ENV_VAR} interpolation in YAML string values so that
secrets (e.g. the database DSN) can be injected via environment
variables rather than hard-coded in the config file.

Example:

    service:
      description: City assets
      max_record_count: 2000
      debug: false
    database:
      dsn: ${POSTGIS_DSN}
      schema_name: public
      srid: 4326
"""

import logging
import os
import re
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from postgis_geo.query.datasource import PostGISDataSource
from postgis_geo.query.geometry import Extent, SpatialReference

logger = logging.getLogger(__name__)

_settings = None

_ENV_RE = re.compile(r"\$\{(\w+)\}")


class DatabaseSettings(BaseModel):
    """Connection settings for the PostGIS data source."""

    dsn: str = ""
    schema_name: str = "public"
    srid: int = 4326


class ServiceSettings(BaseModel):
    """Service-level metadata and runtime switches."""

    description: str = "ArcGIS Feature Server"
    copyright_text: str = ""
    max_record_count: int = Field(default=2000, gt=0)
    spatial_reference: SpatialReference = Field(
        default_factory=lambda: SpatialReference.from_wkid(4326)
    )
    initial_extent: Optional[Extent] = None
    full_extent: Optional[Extent] = None
    units: str = "esriDecimalDegrees"
    # Include driver error text in error responses
    debug: bool = False
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)


def _resolve_env_vars(value):
    """Replace ${VAR} placeholders with environment variable values."""
    if isinstance(value, str):
        return _ENV_RE.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)), value
        )
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def load_settings(config_path: Optional[str] = None) -> ServiceSettings:
    """Load settings from a YAML file."""
    if config_path is None:
        config_path = os.environ.get(
            "FEATURESERVER_CONFIG", "config/featureserver.yml"
        )
    if not os.path.exists(config_path):
        logger.info("No config file at %s, using defaults", config_path)
        return ServiceSettings()

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}
    config = _resolve_env_vars(config)
    return ServiceSettings(
        **config.get("service", {}),
        database=config.get("database", {}),
    )


def get_settings() -> ServiceSettings:
    """Singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_settings(settings: ServiceSettings):
    """Override the settings instance (used for testing)."""
    global _settings
    _settings = settings


def reset_settings():
    """Reset the singleton settings (used for testing)."""
    global _settings
    _settings = None


def create_data_source(settings: Optional[ServiceSettings] = None) -> PostGISDataSource:
    """Build the PostGIS data source described by the settings."""
    settings = settings or get_settings()
    db = settings.database
    if not db.dsn:
        raise ValueError("No database DSN configured (database.dsn)")
    return PostGISDataSource(db.dsn, schema=db.schema_name, srid=db.srid)
