"""
purchasing_config -- single public entrypoint for purchasing configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``PurchasingConfig``.
    YAML loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration.  This package sits above ``purchasing_kernel``; the
    kernel never imports from it.  ``purchasing_config.bridges`` turns a
    loaded config into kernel services.

Failure modes:
    - ``FileNotFoundError`` -- neither ``sets/<tenant>.yaml`` nor
      ``sets/default.yaml`` exists.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PURCHASING_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from purchasing_config.loader import load_yaml_file, parse_config, validate_config
from purchasing_config.schema import (
    ApprovalTokenSettings,
    JournalSettings,
    PaymentOrderSettings,
    PurchasingConfig,
)

__all__ = [
    "ApprovalTokenSettings",
    "JournalSettings",
    "PaymentOrderSettings",
    "PurchasingConfig",
    "SECRET_ENV_VAR",
    "get_active_config",
]

_logger = logging.getLogger("purchasing_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

SECRET_ENV_VAR = "PURCHASING_APPROVAL_TOKEN_SECRET"


def _find_config_file(sets_dir: Path, tenant: str) -> Path:
    candidate = sets_dir / f"{tenant}.yaml"
    if candidate.is_file():
        return candidate
    fallback = sets_dir / "default.yaml"
    if fallback.is_file():
        return fallback
    raise FileNotFoundError(
        f"No configuration set for tenant {tenant!r} in {sets_dir}"
    )


def get_active_config(tenant: str, config_dir: Path | None = None) -> PurchasingConfig:
    """The only public configuration entrypoint.

    Args:
        tenant: Tenant identifier; selects ``sets/<tenant>.yaml``.
        config_dir: Override path to the configuration sets directory.

    Raises:
        FileNotFoundError: If no configuration set is found.
        ValueError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = _find_config_file(sets_dir, tenant)
    config = parse_config(load_yaml_file(path))

    secret = os.environ.get(SECRET_ENV_VAR)
    if secret:
        config = dataclasses.replace(
            config,
            approval_token=dataclasses.replace(config.approval_token, secret=secret),
        )

    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "PURCHASING_CONFIG_TRACE",
        extra={
            "trace_type": "PURCHASING_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "requested_tenant": tenant,
            "config_tenant": config.tenant,
            "source_file": path.name,
            "secret_overridden": bool(secret),
        },
    )
    return config
