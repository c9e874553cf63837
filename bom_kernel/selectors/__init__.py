"""Selectors for the BOM kernel (read side)."""

from bom_kernel.selectors.part_selector import PartSelector

__all__ = [
    "PartSelector",
]
