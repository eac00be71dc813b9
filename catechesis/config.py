"""
catechesis.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for deployment settings: identity, API port and the
cadence of the background jobs.  Secrets (``DATABASE_URL``,
``JWT_SECRET``) never live here; they come from the environment / ``.env``.

Usage::

    from catechesis.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.snapshot_hour)     # 1
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CatechesisConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # API
    api_port: int = 8000

    # Background jobs
    snapshot_hour: int = 1  # UTC hour of the nightly analytics run
    leaderboard_rebuild_minutes: int = 60
    event_workers: int = 4

    # Read defaults
    trend_default_days: int = 30
    leaderboard_page_size: int = 20


_DEFAULTS = CatechesisConfig(community_name="Catechesis")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CatechesisConfig:
    """Read *path* and return a :class:`CatechesisConfig` instance.

    Only ``community_name`` is required; every other key falls back to the
    dataclass default.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``community_name`` is missing.
    ValueError
        If ``snapshot_hour`` is outside 0–23.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    snapshot_hour = int(raw.get("snapshot_hour", _DEFAULTS.snapshot_hour))
    if not 0 <= snapshot_hour <= 23:
        raise ValueError(f"snapshot_hour must be 0-23, got {snapshot_hour}")

    return CatechesisConfig(
        community_name=raw["community_name"],
        api_port=int(raw.get("api_port", _DEFAULTS.api_port)),
        snapshot_hour=snapshot_hour,
        leaderboard_rebuild_minutes=int(
            raw.get("leaderboard_rebuild_minutes", _DEFAULTS.leaderboard_rebuild_minutes)
        ),
        event_workers=int(raw.get("event_workers", _DEFAULTS.event_workers)),
        trend_default_days=int(raw.get("trend_default_days", _DEFAULTS.trend_default_days)),
        leaderboard_page_size=int(
            raw.get("leaderboard_page_size", _DEFAULTS.leaderboard_page_size)
        ),
    )


def default_config() -> CatechesisConfig:
    """Config used when no ``config.yaml`` is present (tests, ad-hoc CLI runs)."""
    return _DEFAULTS
