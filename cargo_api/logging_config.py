from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Logging setup for the service.

    Notes:
    - Plain stdlib logging; uvicorn installs the handlers, we only set levels for our package.
    - `APP_LOG_LEVEL=DEBUG` shows the scoped-query decisions logged by `cargo_api.access`.
    """

    normalized = level.upper()
    logging.getLogger("cargo_api").setLevel(normalized)
    logging.getLogger("cargo_api").propagate = True

    # SQLAlchemy echoes every statement at INFO; keep it quiet unless we are debugging.
    if normalized != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
