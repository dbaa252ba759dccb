from __future__ import annotations

import logging
from typing import Iterable, Tuple

from .config import Settings

logger = logging.getLogger(__name__)


def _collect_missing(settings: Settings, pairs: Iterable[Tuple[str, str]]) -> list[str]:
    missing: list[str] = []
    for attr, label in pairs:
        value = getattr(settings, attr, None)
        if value in (None, "", [], {}):
            missing.append(label)
    return missing


def validate_settings(settings: Settings) -> None:
    """Fail fast when mandatory config values are missing for non-dev envs."""
    environment = (settings.environment or "dev").lower()

    dev_missing = _collect_missing(
        settings,
        [
            ("database_url", "DATABASE_URL"),
            ("redis_url", "REDIS_URL"),
        ],
    )
    if environment == "dev":
        if dev_missing:
            logger.warning(
                "Running in dev without recommended config; some features may be disabled missing=%s",
                dev_missing,
            )
        return

    missing = _collect_missing(settings, [("database_url", "DATABASE_URL")])
    if missing:
        raise RuntimeError(
            f"Missing required configuration for environment '{environment}': {', '.join(sorted(missing))}"
        )
    if not settings.redis_url:
        logger.warning(
            "REDIS_URL not set; regeneration locking is limited to this process environment=%s",
            environment,
        )
