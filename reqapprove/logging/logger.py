"""
Structured Logging

One JSON object per log line. Approval-link tokens are masked wherever
they appear in a message, and decision handling attaches the requisition
context (row, stage, approver) to its entries through WorkflowLogAdapter.
"""

import json
import logging
import logging.config
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml


TOKEN_PATTERN = re.compile(r"(token=)[^&\s\"'<>]+")


def redact_tokens(text: str) -> str:
    """Mask the value of every token= query parameter in text"""
    return TOKEN_PATTERN.sub(r"\1***", text)


class StructuredFormatter(logging.Formatter):
    """Render a record as JSON: timestamp, level, component, message, origin and context fields"""

    def __init__(self, component: str = "reqapprove"):
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": self.component,
            "logger": record.name,
            "message": redact_tokens(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = getattr(record, "extra_fields", None)
        if context:
            entry.update(context)

        if record.exc_info:
            entry["exception"] = redact_tokens(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


class WorkflowLogAdapter(logging.LoggerAdapter):
    """
    Merges a fixed requisition context into each record's extra_fields.

    Fields passed per call with extra={'extra_fields': {...}} win over the
    bound context.
    """

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        fields = dict(self.extra)
        fields.update(extra.get("extra_fields") or {})
        extra["extra_fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs


def with_context(logger: logging.Logger, **context: Any) -> WorkflowLogAdapter:
    """
    Bind requisition context to a logger; None values are dropped.

    Example:
        >>> log = with_context(logger, row=12, stage=1, approver="sam@claimclimbers.com")
        >>> log.info("Decision recorded")
    """
    return WorkflowLogAdapter(logger, {k: v for k, v in context.items() if v is not None})


def get_logger(name: str, component: str = "reqapprove", level: int = logging.INFO) -> logging.Logger:
    """
    Logger with its own JSON console handler, for entry points that run
    before (or without) configure_logging.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter(component))

    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def _read_logging_config(config_path: str) -> Dict[str, Any]:
    with open(config_path, "r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle)
    if not isinstance(config, dict) or not config:
        raise ValueError("Logging config is empty or not a mapping")
    return config


def configure_logging(config_path: Optional[str] = None, default_level: int = logging.INFO) -> bool:
    """
    Apply a YAML dictConfig, or basicConfig when the file is absent or unusable.

    Returns:
        True if the YAML config was applied
    """
    if not config_path or not os.path.isfile(config_path):
        logging.basicConfig(level=default_level)
        return False

    try:
        config = _read_logging_config(config_path)
        for handler in config.get("handlers", {}).values():
            directory = os.path.dirname(handler.get("filename") or "")
            if directory:
                os.makedirs(directory, exist_ok=True)
        logging.config.dictConfig(config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logging.basicConfig(level=default_level)
        logging.getLogger(__name__).warning(f"Could not load logging config {config_path}: {exc}")
        return False

    return True
