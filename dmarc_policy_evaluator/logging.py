import logging
import logging.config
from typing import Any, Dict, List, Union, cast

import structlog

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_FOREIGN_PRE_CHAIN: List[Any] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.format_exc_info,
]


def parse_log_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        try:
            return _LOG_LEVELS[level.lower()]
        except KeyError as err:
            raise ValueError(f"invalid log level {level!r}") from err
    return level


def _processor_formatter(processors: List[Any]) -> Dict[str, Any]:
    return {
        "()": structlog.stdlib.ProcessorFormatter,
        "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
        + processors,
        "foreign_pre_chain": _FOREIGN_PRE_CHAIN,
    }


def _formatters() -> Dict[str, Any]:
    console_timestamper = structlog.processors.TimeStamper(
        fmt="%Y-%m-%d %H:%M:%S", utc=False
    )
    return {
        "plain": _processor_formatter(
            [console_timestamper, structlog.dev.ConsoleRenderer(colors=False)]
        ),
        "colored": _processor_formatter(
            [console_timestamper, structlog.dev.ConsoleRenderer(colors=True)]
        ),
        "json": _processor_formatter(
            [
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ]
        ),
    }


def configure_logging(overrides: dict, *, debug: bool):
    """Route structlog and stdlib logging through the same handlers.

    ``overrides`` is merged into a ``logging.config.dictConfig`` dictionary.
    Handlers may use the ``plain``, ``colored`` and ``json`` formatters. The
    ``debug`` flag takes precedence over the configured root log level.
    """
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = parse_log_level(overrides.get("root", {}).get("level", "info"))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging_config: Dict[str, Any] = {
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "colored"},
        },
        "root": {},
    }
    logging_config.update(overrides)
    logging_config.update(
        {"version": 1, "incremental": False, "formatters": _formatters()}
    )

    root = dict(cast(dict, logging_config["root"]))
    logging_config["root"] = root
    root.setdefault("handlers", ["default"])
    root["level"] = log_level
    logging.config.dictConfig(logging_config)
