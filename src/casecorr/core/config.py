# src/casecorr/core/config.py

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger(__name__)


class MatchWeightsConfig(BaseModel):
    """Rule table for intra-batch duplicate detection."""

    email: int = Field(default=50, ge=0)
    phone: int = Field(default=40, ge=0)
    username: int = Field(default=30, ge=0)
    name_exact: int = Field(default=35, ge=0)
    name_partial: int = Field(default=20, ge=0)
    ip: int = Field(default=25, ge=0)
    address_exact: int = Field(default=30, ge=0)
    address_partial: int = Field(default=15, ge=0)
    match_threshold: int = Field(default=30, ge=0, le=100)
    min_phone_digits: int = Field(default=8, ge=1)
    max_confidence: int = Field(default=100, ge=0, le=100)


class CorrelationWeightsConfig(BaseModel):
    """Per-shared-value weights for cross-entity correlation."""

    email: int = Field(default=30, ge=0)
    phone: int = Field(default=25, ge=0)
    username: int = Field(default=20, ge=0)
    ip: int = Field(default=15, ge=0)
    address: int = Field(default=20, ge=0)
    max_score: int = Field(default=100, ge=0, le=100)


class Neo4jConfig(BaseModel):
    uri: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: SecretStr = SecretStr("")
    database: str = "neo4j"


class StorageConfig(BaseModel):
    backend: Literal["memory", "neo4j"] = "memory"


class CaseCorrConfig(BaseModel):
    """
    Main configuration model for casecorr.
    """

    matching: MatchWeightsConfig = Field(default_factory=MatchWeightsConfig)
    correlation: CorrelationWeightsConfig = Field(
        default_factory=CorrelationWeightsConfig
    )
    neo4j: Neo4jConfig = Field(default_factory=Neo4jConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("neo4j", mode="before")
    @classmethod
    def load_neo4j_from_env(cls, v: Any) -> Any:
        """Override Neo4j settings with environment variables if present."""
        if isinstance(v, Neo4jConfig):
            v = v.model_dump()
            v["password"] = v["password"].get_secret_value()
        if not isinstance(v, dict):
            v = {}
        v = dict(v)

        if "NEO4J_URI" in os.environ:
            v["uri"] = os.environ["NEO4J_URI"]
        if "NEO4J_USERNAME" in os.environ:
            v["username"] = os.environ["NEO4J_USERNAME"]
        if "NEO4J_PASSWORD" in os.environ:
            v["password"] = os.environ["NEO4J_PASSWORD"]
        if "NEO4J_DATABASE" in os.environ:
            v["database"] = os.environ["NEO4J_DATABASE"]

        return v

    @field_validator("storage", mode="before")
    @classmethod
    def load_storage_from_env(cls, v: Any) -> Any:
        if isinstance(v, StorageConfig):
            v = v.model_dump()
        if not isinstance(v, dict):
            v = {}
        v = dict(v)

        if "CASECORR_STORAGE_BACKEND" in os.environ:
            v["backend"] = os.environ["CASECORR_STORAGE_BACKEND"].lower()

        return v

    class Config:
        validate_default = True


def load_config(config_path: Optional[Union[str, Path]] = None) -> CaseCorrConfig:
    """
    Load casecorr configuration from YAML file.

    Args:
        config_path: Path to config.yaml (default: ./config/config.yaml)

    Returns:
        Validated CaseCorrConfig instance.
    """
    if config_path is None:
        config_path = Path("config") / "config.yaml"
    else:
        config_path = Path(config_path)

    config_data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config file {config_path}: {e}")
            config_data = {}
        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config file {config_path}: top level is not a mapping")
            config_data = {}
    else:
        logger.info(f"Config file not found at {config_path}, using defaults")

    # Create config instance (env vars override file)
    config = CaseCorrConfig(**config_data)

    # Log non-secret settings for debugging
    logger.debug("casecorr configuration loaded with settings:")
    logger.debug(f"  Match threshold: {config.matching.match_threshold}")
    logger.debug(f"  Storage backend: {config.storage.backend}")
    logger.debug(f"  Neo4j URI: {config.neo4j.uri}")

    return config
