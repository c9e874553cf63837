"""
BOM configuration schema.

Frozen dataclasses the loader produces from YAML.  ``BomConfiguration``
is the whole source artifact; the nested sections mirror the top-level
YAML keys one to one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class DocumentConfig:
    """Where attached files are stored."""

    root: str
    # Longest kept extension, dot included
    extension_max_length: int = 10


@dataclass(frozen=True)
class CostingConfig:
    # Applied to achats submitted without tva_achat
    default_vat_pct: Decimal = Decimal("20")


@dataclass(frozen=True)
class ListingConfig:
    default_page_size: int = 20
    max_page_size: int = 200


@dataclass(frozen=True)
class KernelConfig:
    duplicate_max_attempts: int = 50
    max_bom_depth: int = 64
    position_step: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    # Level of the bom_kernel logger; handler and format are fixed
    level: str = "INFO"


@dataclass(frozen=True)
class BomConfiguration:
    """
    A complete, validated configuration.

    ``checksum`` is the SHA-256 of the canonical JSON form of the source
    YAML and identifies the configuration in the BOM_CONFIG_TRACE record.
    """

    config_id: str
    version: int
    database: DatabaseConfig
    documents: DocumentConfig
    costing: CostingConfig = field(default_factory=CostingConfig)
    listing: ListingConfig = field(default_factory=ListingConfig)
    kernel: KernelConfig = field(default_factory=KernelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
