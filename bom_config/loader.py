"""
Configuration Loader (``bom_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``bom_config.schema`` dataclasses.  Runtime callers go through
``bom_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Required keys (``config_id``, ``database.url``, ``documents.root``)
  have no silent default: a missing one raises ``KeyError``.
* Values are range-checked here, before any kernel object is built.
* ``compute_checksum`` is deterministic for identical YAML content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from bom_config.schema import (
    BomConfiguration,
    CostingConfig,
    DatabaseConfig,
    DocumentConfig,
    KernelConfig,
    ListingConfig,
    LoggingConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_int(section: str, data: dict[str, Any], key: str, default: int) -> int:
    value = int(data.get(key, default))
    if value < 1:
        raise ValueError(f"{section}.{key} must be >= 1, got {value}")
    return value


def parse_decimal(value: Any) -> Decimal:
    """Parse a decimal from YAML; floats go through str."""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int("database", data, "pool_size", 20),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive_int("database", data, "pool_timeout", 30),
        pool_recycle=int(data.get("pool_recycle", 1800)),
    )


def parse_documents(data: dict[str, Any]) -> DocumentConfig:
    max_length = _positive_int("documents", data, "extension_max_length", 10)
    if max_length < 2:
        raise ValueError("documents.extension_max_length must leave room for the dot")
    return DocumentConfig(root=str(data["root"]), extension_max_length=max_length)


def parse_costing(data: dict[str, Any]) -> CostingConfig:
    vat = parse_decimal(data.get("default_vat_pct", "20"))
    if vat < 0:
        raise ValueError(f"costing.default_vat_pct must be >= 0, got {vat}")
    return CostingConfig(default_vat_pct=vat)


def parse_listing(data: dict[str, Any]) -> ListingConfig:
    default_size = _positive_int("listing", data, "default_page_size", 20)
    max_size = _positive_int("listing", data, "max_page_size", 200)
    if default_size > max_size:
        raise ValueError(
            f"listing.default_page_size ({default_size}) exceeds max_page_size ({max_size})"
        )
    return ListingConfig(default_page_size=default_size, max_page_size=max_size)


def parse_kernel(data: dict[str, Any]) -> KernelConfig:
    return KernelConfig(
        duplicate_max_attempts=_positive_int("kernel", data, "duplicate_max_attempts", 50),
        max_bom_depth=_positive_int("kernel", data, "max_bom_depth", 64),
        position_step=_positive_int("kernel", data, "position_step", 10),
    )


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {_LOG_LEVELS}, got {level!r}")
    return LoggingConfig(level=level)


def parse_configuration(data: dict[str, Any]) -> BomConfiguration:
    """
    Build a BomConfiguration from an already-loaded YAML mapping.

    Optional sections fall back to their dataclass defaults.
    """
    return BomConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        database=parse_database(data["database"]),
        documents=parse_documents(data["documents"]),
        costing=parse_costing(data.get("costing") or {}),
        listing=parse_listing(data.get("listing") or {}),
        kernel=parse_kernel(data.get("kernel") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> BomConfiguration:
    return parse_configuration(load_yaml_file(path))
