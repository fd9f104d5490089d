import json
import logging
import re

import pytest
import structlog

from dmarc_policy_evaluator.logging import configure_logging, parse_log_level

from .conftest import create_evaluator
from .test_evaluator import create_context


@pytest.fixture(autouse=True)
def reset_logging_config_after_test():
    yield None
    logging.Logger.manager.loggerDict.clear()
    configure_logging({}, debug=True)


@pytest.mark.parametrize("level", [logging.INFO, logging.ERROR, 5])
def test_parse_log_level_passes_through_numeric_levels(level):
    assert parse_log_level(level) == level


@pytest.mark.parametrize(
    "name,level",
    [
        ("debug", logging.DEBUG),
        ("Info", logging.INFO),
        ("WARNING", logging.WARNING),
        ("eRRoR", logging.ERROR),
        ("critical", logging.CRITICAL),
    ],
)
def test_parse_log_level_parses_names_case_insensitively(name, level):
    assert parse_log_level(name) == level


def test_parse_log_level_rejects_unknown_names():
    with pytest.raises(ValueError):
        parse_log_level("verbose")


def test_configured_level_filters_structlog_and_stdlib(caplog):
    configure_logging({"root": {"level": "error"}}, debug=False)
    structlog_logger = structlog.get_logger("dmarc-evaluator")
    stdlib_logger = logging.getLogger("dmarc-evaluator")
    logging.getLogger().addHandler(caplog.handler)

    for logger in (structlog_logger, stdlib_logger):
        logger.warning("hidden")
        logger.error("shown")

    assert caplog.record_tuples == [
        ("dmarc-evaluator", logging.ERROR, "{'event': 'shown', 'level': 'error'}"),
        ("dmarc-evaluator", logging.ERROR, "shown"),
    ]


def test_debug_flag_takes_precedence_over_configured_level(caplog):
    configure_logging({"root": {"level": "error"}}, debug=True)
    structlog_logger = structlog.get_logger("dmarc-evaluator")
    stdlib_logger = logging.getLogger("dmarc-evaluator")
    logging.getLogger().addHandler(caplog.handler)

    for logger in (structlog_logger, stdlib_logger):
        logger.debug("shown")

    assert caplog.record_tuples == [
        ("dmarc-evaluator", logging.DEBUG, "{'event': 'shown', 'level': 'debug'}"),
        ("dmarc-evaluator", logging.DEBUG, "shown"),
    ]


def test_plain_console_format(capsys):
    configure_logging(
        {
            "handlers": {
                "default": {"class": "logging.StreamHandler", "formatter": "plain"}
            },
        },
        debug=False,
    )
    structlog.get_logger().bind(logger="DmarcEvaluator").info(
        "event", header_from="example.com"
    )
    logging.getLogger("DmarcEvaluator").info(
        "event", extra={"header_from": "example.com"}
    )

    captured = capsys.readouterr()
    timestamp = r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}"
    spacing = " " * 24
    line = (
        f"{timestamp} \\[info     \\] event {spacing} "
        "\\[DmarcEvaluator\\] header_from=example.com\n"
    )
    assert re.match(f"^{line}{line}$", captured.err)


def test_json_format(capsys):
    configure_logging(
        {
            "handlers": {
                "default": {"class": "logging.StreamHandler", "formatter": "json"}
            },
        },
        debug=False,
    )
    structlog.get_logger().bind(logger="DmarcEvaluator").warning(
        "event", header_from="example.com"
    )
    logging.getLogger("DmarcEvaluator").warning(
        "event", extra={"header_from": "example.com"}
    )

    captured = capsys.readouterr()
    lines = captured.err.splitlines()
    assert len(lines) == 2
    for line in lines:
        doc = json.loads(line)
        del doc["timestamp"]
        assert doc == {
            "level": "warning",
            "logger": "DmarcEvaluator",
            "event": "event",
            "header_from": "example.com",
        }


def test_loggers_can_be_silenced(caplog):
    configure_logging({"loggers": {"noisy": {"propagate": False}}}, debug=False)
    logging.getLogger().addHandler(caplog.handler)

    logging.getLogger("noisy").warning("hidden")

    assert caplog.record_tuples == []


@pytest.mark.asyncio
async def test_evaluation_problems_are_logged_with_context(
    captured_logs, txt_lookup, domain_resolver
):
    evaluator = create_evaluator(txt_lookup, domain_resolver)

    await evaluator.evaluate(create_context(None))

    messages = [record.getMessage() for record in captured_logs.records]
    assert any(
        "DMARC evaluation not possible." in message and "DmarcEvaluator" in message
        for message in messages
    )
