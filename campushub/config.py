"""
campushub.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (community
identity, API port, contact address).  All gamification tuning values
(attendance points, default task points, leaderboard limits) live in the
``settings`` database table and are read through
:class:`~campushub.engine.cache.ConfigCache`.

Usage::

    from campushub.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "GDG on Campus"
    print(cfg.api_port)          # 8000
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object: infrastructure/identity only.
# Gamification tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CampusHubConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    community_motto: str

    # API
    api_port: int

    # Optional
    contact_email: str | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CampusHubConfig:
    """Read *path* and return a :class:`CampusHubConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return CampusHubConfig(
        community_name=raw["community_name"],
        community_motto=raw["community_motto"],
        api_port=int(raw["api_port"]),
        contact_email=raw.get("contact_email") or None,
    )
