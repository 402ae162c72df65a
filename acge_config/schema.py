"""
Configuration schema (``acge_config.schema``).

Frozen dataclasses describing the runtime configuration.  Every field has
already been resolved (YAML default, then environment override) by the
time an ``AcgeConfig`` exists.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PUBLIC_BASE_URL = "http://localhost:3000"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20


@dataclass(frozen=True)
class AcgeConfig:
    """Resolved runtime configuration.

    ``public_base_url`` has no trailing slash; it prefixes every quitus
    verification link.
    """

    config_id: str
    version: int
    checksum: str
    database: DatabaseConfig
    log_level: str
    public_base_url: str
    public_base_url_source: str
    dossier_numbering: str
