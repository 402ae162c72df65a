"""
acge_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits beside ``acge_kernel`` and below ``acge_api``.
    The kernel MUST NEVER import from ``acge_config``; the API passes the
    resolved values (database URL, public base URL, numbering scheme) into
    kernel constructors.

Failure modes:
    - ``FileNotFoundError`` -- the YAML file does not exist.
    - ``ValueError`` -- a configured value is malformed.

Audit relevance:
    Every successful ``get_active_config()`` call emits a ``CONFIG_TRACE``
    log entry with the config id, version, checksum and the source of the
    public base URL, so a misrouted QR link can be traced to its origin.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from acge_config.loader import build_config, load_yaml_file, resolve_public_base_url
from acge_config.schema import AcgeConfig, DatabaseConfig

_logger = logging.getLogger("acge_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AcgeConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to the YAML file.  Defaults to the
            packaged ``defaults.yaml``.
        environ: Environment mapping.  Defaults to ``os.environ``.

    Returns:
        AcgeConfig -- frozen, fully resolved.
    """
    path = config_path or _DEFAULT_CONFIG_FILE
    env = os.environ if environ is None else environ

    config = build_config(load_yaml_file(path), env)

    _logger.info(
        "CONFIG_TRACE",
        extra={
            "trace_type": "CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "public_base_url": config.public_base_url,
            "public_base_url_source": config.public_base_url_source,
            "dossier_numbering": config.dossier_numbering,
        },
    )
    return config


__all__ = [
    "AcgeConfig",
    "DatabaseConfig",
    "get_active_config",
    "resolve_public_base_url",
]
