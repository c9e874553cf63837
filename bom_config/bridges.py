"""
Config -> Kernel Bridges.

Functions that turn a BomConfiguration into kernel inputs.  They live in
bom_config (the producer) because the kernel must NEVER import
bom_config.

Usage:
    from bom_config import get_active_config
    from bom_config.bridges import build_part_service, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    with session_scope() as session:
        service = build_part_service(config, session, auto_commit=False)
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from bom_config.schema import BomConfiguration
from bom_kernel.db.engine import init_engine_from_url
from bom_kernel.db.immutability import register_immutability_listeners
from bom_kernel.domain.clock import Clock
from bom_kernel.domain.settings import KernelSettings
from bom_kernel.logging_config import configure_logging
from bom_kernel.services.auditor_service import AuditorService
from bom_kernel.services.part_service import PartService
from bom_kernel.storage.document_store import LocalDocumentStore


def build_kernel_settings(config: BomConfiguration) -> KernelSettings:
    return KernelSettings(
        duplicate_max_attempts=config.kernel.duplicate_max_attempts,
        max_bom_depth=config.kernel.max_bom_depth,
        default_page_size=config.listing.default_page_size,
        max_page_size=config.listing.max_page_size,
        default_vat_pct=config.costing.default_vat_pct,
        position_step=config.kernel.position_step,
    )


def build_document_store(
    config: BomConfiguration,
    base_dir: Path | None = None,
) -> LocalDocumentStore:
    """Document store rooted at ``documents.root``, resolved against base_dir when relative."""
    root = Path(config.documents.root)
    if base_dir is not None and not root.is_absolute():
        root = base_dir / root
    return LocalDocumentStore(root, extension_max_length=config.documents.extension_max_length)


def init_engine_from_config(config: BomConfiguration) -> Engine:
    """Engine from ``database``, with the ``logging.level`` applied."""
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    configure_logging(level=config.logging.level)
    return engine


def build_part_service(
    config: BomConfiguration,
    session: Session,
    clock: Clock | None = None,
    base_dir: Path | None = None,
    auto_commit: bool = True,
) -> PartService:
    """
    PartService wired with an AuditorService, the document store and settings.

    The append-only listeners are registered here as well, for callers that
    bring their own session without going through init_engine_from_config.
    """
    register_immutability_listeners()
    return PartService(
        session,
        AuditorService(session, clock),
        clock=clock,
        document_store=build_document_store(config, base_dir),
        settings=build_kernel_settings(config),
        auto_commit=auto_commit,
    )
