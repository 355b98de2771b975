# kanbanstr configuration
# Override the gateway and behaviour via config.yaml or KANBANSTR_* env vars.

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

CONFIG_PATH = Path.home() / ".config" / "kanbanstr" / "config.yaml"

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Runtime configuration for the board/card repository."""

    # Relay gateway (signs, broadcasts and queries on our behalf)
    gateway_url: Optional[str] = None   # None = no network client
    request_timeout: float = 10.0
    current_user: Optional[str] = None  # hex pubkey; None = read-only

    # Queries
    list_limit: int = 500

    # Defaults
    default_status: str = "To Do"

    # Migration: pause before the post-migration reload so relays settle
    migration_settle_seconds: float = 5.0

    log_level: str = "INFO"

    def apply_env(self):
        """KANBANSTR_GATEWAY / KANBANSTR_USER override the file."""
        gateway = os.environ.get("KANBANSTR_GATEWAY")
        if gateway:
            self.gateway_url = gateway
        user = os.environ.get("KANBANSTR_USER")
        if user:
            self.current_user = user

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        return cfg
