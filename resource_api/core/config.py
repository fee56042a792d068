# Settings management (reads env vars/secrets)
# resource_api/core/config.py

import json
import logging
from functools import lru_cache
from typing import Dict, List, Optional, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables or .env file.
    """
    # --- Project Info ---
    PROJECT_NAME: str = Field("Resource API", validation_alias="PROJECT_NAME")
    API_V1_STR: str = Field("/api", validation_alias="API_V1_STR") # Base path for resource routers
    VERSION: str = Field("0.3.0", validation_alias="APP_VERSION")

    # --- Logging ---
    LOG_LEVEL: str = Field("INFO", validation_alias="LOG_LEVEL")

    # --- Database (MongoDB) ---
    # The $default connection. Use SecretStr to prevent accidental logging of the URI
    MONGODB_URI: SecretStr = Field(
        SecretStr("mongodb://localhost:27017/resource_api"),
        validation_alias="MONGODB_URI",
    )
    # Additional named connections, e.g. "audit=mongodb://host/audit,archive=..."
    MONGODB_CONNECTIONS: Dict[str, SecretStr] = Field(
        default_factory=dict,
        validation_alias="MONGODB_CONNECTIONS",
    )
    MONGODB_DEFAULT_DB_NAME: str = Field("resource_api", validation_alias="MONGODB_DEFAULT_DB_NAME")
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(
        5000, validation_alias="MONGODB_SERVER_SELECTION_TIMEOUT_MS"
    )

    # --- Seeding ---
    SEEDS_DIR: Optional[str] = Field(
        None,
        validation_alias="SEEDS_DIR",
        description="Directory of <connection>.json seed files loaded at startup. None disables seeding."
    )

    # --- Events (Redis relay) ---
    REDIS_URL: Optional[SecretStr] = Field(
        None,
        validation_alias="REDIS_URL",
        description="When set, every emitted resource event is also published on Redis."
    )
    EVENT_CHANNEL_PREFIX: str = Field("resource-api:", validation_alias="EVENT_CHANNEL_PREFIX")
    DEFAULT_EVENT_PREFIX: Optional[str] = Field(None, validation_alias="DEFAULT_EVENT_PREFIX")

    # --- CORS ---
    # Expects a comma-separated string in env var like "http://localhost:3000,https://*.example.com"
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["*"],
        validation_alias="BACKEND_CORS_ORIGINS"
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, list):
            return v
        if v == "*":
            return ["*"]
        raise ValueError(f"Invalid BACKEND_CORS_ORIGINS format: {v}")

    @field_validator("MONGODB_CONNECTIONS", mode='before')
    @classmethod
    def assemble_connections(cls, v: Union[str, Dict[str, str], None]) -> Dict[str, str]:
        if v is None or v == "":
            return {}
        if isinstance(v, dict):
            return v
        if isinstance(v, str):
            if v.lstrip().startswith("{"):
                return json.loads(v)
            # name=uri pairs separated by commas
            connections = {}
            for item in v.split(","):
                if not item.strip():
                    continue
                name, sep, uri = item.partition("=")
                if not sep:
                    raise ValueError(f"Invalid MONGODB_CONNECTIONS entry: {item}")
                connections[name.strip()] = uri.strip()
            return connections
        raise ValueError(f"Invalid MONGODB_CONNECTIONS format: {v}")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

# Use lru_cache to create a singleton instance of the settings
@lru_cache()
def get_settings() -> Settings:
    """Returns the application settings instance."""
    logger.info("Attempting to load application settings...")
    try:
        settings_instance = Settings()
        logger.info(f"Settings loaded successfully for Project: {settings_instance.PROJECT_NAME}")
        logger.info(f"Log Level: {settings_instance.LOG_LEVEL}")
        logger.info(f"CORS Origins: {settings_instance.BACKEND_CORS_ORIGINS}")
        logger.info(f"Named connections: {['$default', *settings_instance.MONGODB_CONNECTIONS]}")
        logger.info(f"Seeds directory: {settings_instance.SEEDS_DIR or 'Not Set'}")
        logger.info(f"Redis event relay: {'enabled' if settings_instance.REDIS_URL else 'disabled'}")
        # DO NOT log SecretStr values directly in production logs!
        return settings_instance
    except Exception as e:
        logger.critical(f"CRITICAL ERROR: Failed to load application settings: {e}", exc_info=True)
        raise RuntimeError(f"Could not load settings: {e}")


# Create a single settings instance to be imported by other modules
settings: Settings = get_settings()
