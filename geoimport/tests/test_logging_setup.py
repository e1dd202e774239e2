from __future__ import annotations

import io
import logging

import pytest

from geoimport.logging_setup import LOGGER_NAME, configure_logging


@pytest.fixture
def geoimport_logger():
    logger = logging.getLogger(LOGGER_NAME)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handlers, level, propagate = saved
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_records_carry_run_id_and_stage(geoimport_logger) -> None:
    stream = io.StringIO()
    configure_logging("debug", stream)

    logging.getLogger("geoimport.ingest.workflows").info(
        "provinces written=1 skipped=0",
        extra={"run_id": "run-1", "stage": "provinces"},
    )

    assert geoimport_logger.level == logging.DEBUG
    assert "INFO [run-1 provinces] geoimport.ingest.workflows: provinces written=1 skipped=0" in stream.getvalue()


def test_records_without_context_use_placeholders(geoimport_logger) -> None:
    stream = io.StringIO()
    configure_logging("INFO", stream)

    logging.getLogger("geoimport.cli").warning("hello")

    assert "WARNING [- -] geoimport.cli: hello" in stream.getvalue()


def test_reconfiguring_replaces_handler(geoimport_logger) -> None:
    configure_logging("INFO", io.StringIO())
    configure_logging("WARNING", io.StringIO())

    assert len(geoimport_logger.handlers) == 1
    assert geoimport_logger.level == logging.WARNING


def test_unknown_level_falls_back_to_info(geoimport_logger) -> None:
    configure_logging("chatty", io.StringIO())

    assert geoimport_logger.level == logging.INFO
