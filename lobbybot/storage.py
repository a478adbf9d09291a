from __future__ import annotations

import json
import os

from .config import TENANT_SETTINGS_FILE, logger
from .state import TenantRegistry


def load_tenant_settings(registry: TenantRegistry, path: str = TENANT_SETTINGS_FILE) -> None:
    """Restore tenant settings from JSON. Join-tracking sets always start empty."""
    try:
        if os.path.exists(path):
            with open(path, "r") as f:
                data = json.load(f)
            registry.restore(data)
            logger.info(f"Loaded settings for {len(registry)} tenants")
        else:
            logger.info("No existing tenant settings file found")
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Could not load tenant settings: {e}")
        registry.restore({})


def save_tenant_settings(registry: TenantRegistry, path: str = TENANT_SETTINGS_FILE) -> None:
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w") as f:
            json.dump(registry.dump(), f, indent=2)
        os.replace(tmp_path, path)
        logger.debug("Tenant settings saved to file")
    except (OSError, TypeError) as e:
        logger.error(f"Could not save tenant settings: {e}")
