"""Host-supplied configuration.

Configuration comes from a dict or a YAML file; nothing is read from the
environment. Example YAML::

    scrubcache:
      cache:
        ttl_seconds: 3600
        max_entries: 500
        max_pii_budget: 10
        key_prefix: scrubcache
      redaction:
        masking: true
        mask_char: "*"
      registry:
        paths:
          - /etc/scrubcache/patterns.yml
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import jsonschema
import yaml

from scrubcache.audit import AuditLog
from scrubcache.cache import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_ENTRIES,
    DEFAULT_MAX_PII_BUDGET,
    DEFAULT_TTL_SECONDS,
    CachePolicy,
    SecureCache,
)
from scrubcache.exceptions import ConfigurationError
from scrubcache.pipeline import PrivacyPipeline
from scrubcache.registry import PatternRegistry, load_registry
from scrubcache.scrubber import Scrubber

logger = logging.getLogger(__name__)

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "cache": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "ttl_seconds": {"type": "integer", "minimum": 1},
                "max_entries": {"type": "integer", "minimum": 1},
                "max_pii_budget": {"type": "integer", "minimum": 0},
                "key_prefix": {"type": "string"},
            },
        },
        "redaction": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "masking": {"type": "boolean"},
                "mask_char": {"type": "string", "minLength": 1, "maxLength": 1},
            },
        },
        "registry": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "paths": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
}


@dataclass(frozen=True)
class ScrubCacheConfig:
    """Validated configuration."""

    ttl_seconds: int = DEFAULT_TTL_SECONDS
    max_entries: int = DEFAULT_MAX_ENTRIES
    max_pii_budget: int = DEFAULT_MAX_PII_BUDGET
    key_prefix: str = DEFAULT_KEY_PREFIX
    masking: bool = True
    mask_char: str = "*"
    pattern_paths: Optional[tuple[str, ...]] = None


def load_config(data: Optional[dict[str, Any]] = None) -> ScrubCacheConfig:
    """
    Validate a config dict.

    The settings may be nested under a top-level ``scrubcache`` key.

    Raises:
        ConfigurationError: If the dict does not match the schema
    """
    data = data or {}
    if "scrubcache" in data:
        data = data["scrubcache"] or {}

    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e.message}") from e

    cache = data.get("cache", {})
    redaction = data.get("redaction", {})
    paths = data.get("registry", {}).get("paths")

    return ScrubCacheConfig(
        ttl_seconds=cache.get("ttl_seconds", DEFAULT_TTL_SECONDS),
        max_entries=cache.get("max_entries", DEFAULT_MAX_ENTRIES),
        max_pii_budget=cache.get("max_pii_budget", DEFAULT_MAX_PII_BUDGET),
        key_prefix=cache.get("key_prefix", DEFAULT_KEY_PREFIX),
        masking=redaction.get("masking", True),
        mask_char=redaction.get("mask_char", "*"),
        pattern_paths=tuple(paths) if paths else None,
    )


def load_config_file(path: Union[str, Path]) -> ScrubCacheConfig:
    """Load and validate a YAML config file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    logger.info(f"Loaded configuration from {path}")
    return load_config(data)


def build_registry(config: ScrubCacheConfig) -> PatternRegistry:
    paths = list(config.pattern_paths) if config.pattern_paths else None
    return load_registry(paths=paths)


def build_scrubber(
    config: ScrubCacheConfig, registry: Optional[PatternRegistry] = None
) -> Scrubber:
    return Scrubber(
        registry or build_registry(config),
        masking=config.masking,
        mask_char=config.mask_char,
    )


def build_cache(config: ScrubCacheConfig) -> SecureCache:
    return SecureCache(
        ttl_seconds=config.ttl_seconds,
        max_entries=config.max_entries,
        policy=CachePolicy(max_pii_budget=config.max_pii_budget),
        key_prefix=config.key_prefix,
    )


def build_pipeline(
    config: ScrubCacheConfig,
    registry: Optional[PatternRegistry] = None,
    audit: Optional[AuditLog] = None,
) -> PrivacyPipeline:
    """Wire a scrubber, a fresh cache and an optional audit log."""
    return PrivacyPipeline(build_scrubber(config, registry), build_cache(config), audit=audit)
