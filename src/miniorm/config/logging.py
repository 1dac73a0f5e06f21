"""Logging setup for the miniorm command line and tests."""

from __future__ import annotations

import logging

SQL_LOGGER = "sqlalchemy.engine"


def configure_logging(
    *, level: int = logging.INFO, echo_sql: bool = False, force: bool = False
) -> None:
    """Initialise the root logger and set how much SQL the engine logs.

    Statements issued by the store are logged through ``sqlalchemy.engine`` only
    when ``echo_sql`` is set; otherwise that logger stays at WARNING regardless of
    ``level``. Pass ``force=True`` to replace handlers installed earlier.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    logging.getLogger(SQL_LOGGER).setLevel(logging.INFO if echo_sql else logging.WARNING)
