"""
Configuration Loader (``acge_config.loader``).

Responsibility
--------------
Loads the packaged YAML defaults, applies environment overrides and
resolves the public base URL used in quitus verification links.  This is
internal tooling: runtime callers go through
``acge_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` with a descriptive message; malformed
  YAML propagates as ``yaml.YAMLError``.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed
  defaults, so two processes loading the same file agree on its identity.
* The public base URL is resolved through a fixed, ordered candidate list
  and never ends with a slash.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from acge_config.schema import DEFAULT_PUBLIC_BASE_URL, AcgeConfig, DatabaseConfig

# Ordered; the first non-empty value wins.
BASE_URL_ENV_CANDIDATES = (
    "ACGE_PUBLIC_BASE_URL",
    "NEXT_PUBLIC_APP_URL",
    "NEXTAUTH_URL",
    "VERCEL_URL",
)

_NUMBERING_SCHEMES = ("dated", "sequential")
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name}: expected a boolean, got {value!r}")


def resolve_public_base_url(
    environ: Mapping[str, str],
    configured: str | None = None,
) -> tuple[str, str]:
    """Resolve the quitus verification base URL.

    Returns:
        ``(url, source)`` where ``source`` names the variable (or
        ``"config"`` / ``"default"``) the value came from.
    """
    for name in BASE_URL_ENV_CANDIDATES:
        value = (environ.get(name) or "").strip()
        if not value:
            continue
        if name == "VERCEL_URL" and "://" not in value:
            value = f"https://{value}"
        return value.rstrip("/"), name

    if configured and configured.strip():
        return configured.strip().rstrip("/"), "config"
    return DEFAULT_PUBLIC_BASE_URL, "default"


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"config section {key!r} must be a mapping")
    return section


def build_config(data: Mapping[str, Any], environ: Mapping[str, str]) -> AcgeConfig:
    """Apply environment overrides to parsed defaults.

    Raises:
        ValueError: If a value is malformed.
    """
    database = _section(data, "database")
    logging_section = _section(data, "logging")
    quitus = _section(data, "quitus")
    dossiers = _section(data, "dossiers")

    url = environ.get("ACGE_DATABASE_URL") or database.get("url")
    if not url:
        raise ValueError("database.url is required")

    echo = parse_bool(
        environ.get("ACGE_SQL_ECHO", database.get("echo", False)), "ACGE_SQL_ECHO",
    )
    log_level = str(
        environ.get("ACGE_LOG_LEVEL") or logging_section.get("level") or "INFO"
    ).upper()

    numbering = str(dossiers.get("numbering", "dated"))
    if numbering not in _NUMBERING_SCHEMES:
        raise ValueError(
            f"dossiers.numbering must be one of {', '.join(_NUMBERING_SCHEMES)}, "
            f"got {numbering!r}"
        )

    base_url, source = resolve_public_base_url(environ, quitus.get("public_base_url"))

    return AcgeConfig(
        config_id=str(data.get("config_id", "acge-default")),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        database=DatabaseConfig(
            url=str(url),
            echo=echo,
            pool_size=int(database.get("pool_size", 10)),
            max_overflow=int(database.get("max_overflow", 20)),
        ),
        log_level=log_level,
        public_base_url=base_url,
        public_base_url_source=source,
        dossier_numbering=numbering,
    )
