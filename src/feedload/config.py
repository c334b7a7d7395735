"""Runtime configuration read from the environment."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from feedload.executor import DEFAULT_MAX_WORKERS

logger = logging.getLogger(__name__)

ENV_PREFIX = "FEEDLOAD_"
DEFAULT_DB_URL = "sqlite:///feeds.sqlite"
DEFAULT_SOURCE_ROOT = "feeds"
DEFAULT_BUSY_TIMEOUT = 30.0
DEFAULT_SKIP_TABLES = frozenset({"shapes"})


@dataclass
class LoaderConfig:
    """Settings for a feed refresh run.

    ``statement_timeout`` bounds how long one table's inserts may take to
    settle; None waits indefinitely. ``busy_timeout`` is how long the store
    waits on a lock held by another connection.
    """

    db_url: str = DEFAULT_DB_URL
    source_root: Path = Path(DEFAULT_SOURCE_ROOT)
    max_workers: int = DEFAULT_MAX_WORKERS
    statement_timeout: float | None = None
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT
    skip_tables: frozenset[str] = field(default_factory=lambda: DEFAULT_SKIP_TABLES)
    journal_mode: str | None = "WAL"
    synchronous: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LoaderConfig":
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return None
            return raw.strip()

        def _int(name: str, default: int) -> int:
            raw = _get(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s%s=%r, using %d", ENV_PREFIX, name, raw, default)
                return default
            if value < 1:
                logger.warning("%s%s must be positive, using %d", ENV_PREFIX, name, default)
                return default
            return value

        def _float(name: str, default: float | None) -> float | None:
            raw = _get(name)
            if raw is None:
                return default
            try:
                value = float(raw)
            except ValueError:
                logger.warning("Invalid %s%s=%r, using %s", ENV_PREFIX, name, raw, default)
                return default
            if value <= 0:
                logger.warning("%s%s must be positive, using %s", ENV_PREFIX, name, default)
                return default
            return value

        skip_raw = env.get(ENV_PREFIX + "SKIP_TABLES")
        if skip_raw is None:
            skip_tables = DEFAULT_SKIP_TABLES
        else:
            skip_tables = frozenset(t.strip() for t in skip_raw.split(",") if t.strip())

        return cls(
            db_url=_get("DB_URL") or DEFAULT_DB_URL,
            source_root=Path(_get("SOURCE_ROOT") or DEFAULT_SOURCE_ROOT),
            max_workers=_int("MAX_WORKERS", DEFAULT_MAX_WORKERS),
            statement_timeout=_float("STATEMENT_TIMEOUT", None),
            busy_timeout=_float("BUSY_TIMEOUT", DEFAULT_BUSY_TIMEOUT),
            skip_tables=skip_tables,
            journal_mode=_get("JOURNAL_MODE") or "WAL",
            synchronous=_get("SYNCHRONOUS"),
        )
