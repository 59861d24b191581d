from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Stdlib logging only; uvicorn already configures handlers.
    - Sets the level for ``careauthz`` and its children, including the
      ``careauthz.audit`` decision log.
    - Set `AUTHZ_LOG_LEVEL=DEBUG` to see per-rule matching.
    """

    normalized = level.upper()
    logging.getLogger("careauthz").setLevel(normalized)
    logging.getLogger("careauthz").propagate = True
