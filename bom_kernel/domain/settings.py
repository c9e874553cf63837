"""
Kernel settings -- the tunables the part services read.

The kernel never reads configuration files.  ``bom_config.bridges``
builds a KernelSettings from the active configuration; tests and callers
without a configuration use the defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class KernelSettings:
    # <code>-COPIE, <code>-COPIE-2, ... up to this many candidates
    duplicate_max_attempts: int = 50
    # BOM descendant traversal stops after this many levels
    max_bom_depth: int = 64
    default_page_size: int = 20
    max_page_size: int = 200
    default_vat_pct: Decimal = Decimal("20")
    position_step: int = 10

    def __post_init__(self) -> None:
        if self.duplicate_max_attempts < 1:
            raise ValueError("duplicate_max_attempts must be >= 1")
        if self.max_bom_depth < 1:
            raise ValueError("max_bom_depth must be >= 1")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be between 1 and max_page_size")
        if self.position_step < 1:
            raise ValueError("position_step must be >= 1")

    def clamp_page_size(self, requested: int | None) -> int:
        if requested is None:
            return self.default_page_size
        return max(1, min(requested, self.max_page_size))


DEFAULT_SETTINGS = KernelSettings()
