"""Loguru setup for daosync clients and the CLI."""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:  # pragma: no cover - typing only
    from daosync.config import DaoSyncSettings

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def _scope_filter(scopes: tuple[str, ...]) -> Callable[[Any], bool]:
    """Build a filter passing DEBUG records from the given daosync modules."""

    def _filter(record: Any) -> bool:
        if not isinstance(record, Mapping):
            return False
        if getattr(record.get("level"), "name", None) != "DEBUG":
            return False
        name = record.get("name", "")
        return any(
            name.startswith(scope) or name.startswith(f"daosync.{scope}")
            for scope in scopes
        )

    return _filter


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    log_file: Path | None = None,
    colorize: bool = False,
) -> tuple[int, ...]:
    """Replace loguru's handlers with daosync's.

    ``debug_scopes`` turns on DEBUG for selected modules only, e.g.
    ``("client.read_cache",)`` to trace polling without the rest.
    ``log_file`` adds a rotating file sink at the same level.
    """
    logger.remove()

    handler_ids = [
        logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=colorize)
    ]

    if log_file is not None:
        handler_ids.append(
            logger.add(
                log_file,
                level=level,
                format=LOG_FORMAT,
                rotation="10 MB",
                retention=3,
            )
        )

    scopes = tuple(scope.strip() for scope in debug_scopes if scope.strip())
    if scopes and level.upper() != "DEBUG":
        handler_ids.append(
            logger.add(
                sys.stderr,
                level="DEBUG",
                format=LOG_FORMAT,
                colorize=colorize,
                filter=_scope_filter(scopes),
            )
        )

    return tuple(handler_ids)


def configure_from_settings(settings: DaoSyncSettings) -> tuple[int, ...]:
    return configure_logging(
        settings.log_level,
        debug_scopes=settings.debug_scopes,
        log_file=settings.log_file,
    )
