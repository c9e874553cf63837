"""
bom_config -- single public entrypoint for BOM kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files.  Returns a frozen ``BomConfiguration``.

Architecture position:
    Configuration -- sits above ``bom_kernel``.  The kernel MUST NEVER
    import from ``bom_config``; ``bom_config.bridges`` translates a
    configuration into kernel inputs (KernelSettings, document store,
    engine, PartService).

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Deterministic identity: the same YAML always yields the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or out-of-range settings.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BOM_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every later mutation to the configuration that
    governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bom_config.loader import load_configuration
from bom_config.schema import BomConfiguration

_logger = logging.getLogger("bom_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> BomConfiguration:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is out of range.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_configuration(path)

    _logger.info(
        "BOM_CONFIG_TRACE",
        extra={
            "trace_type": "BOM_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "BomConfiguration",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
]
