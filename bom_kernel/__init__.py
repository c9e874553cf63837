"""
BOM Kernel - technical parts and nomenclature management

A transactional engine for manufactured parts with:
- Cycle-safe bills of materials
- Costed operations and purchased components
- Status lifecycle with an append-only history
- Full auditability via hash chain
- Optimistic concurrency on every part
"""

__version__ = "0.1.0"
