"""Utility modules for the BOM kernel."""

from bom_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_file,
    hash_payload,
)
