import logging
import logging.config
import re
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from pythonjsonlogger.json import JsonFormatter

from .config import LoggingConfig


class RelayProcessor:
    """Custom structlog processor for the notification relay"""

    def __init__(self, service_name: str, environment: str = "development"):
        self.service_name = service_name
        self.environment = environment

    def __call__(
        self, logger: Any, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Process log event"""
        event_dict["service"] = self.service_name
        event_dict["environment"] = self.environment
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        return event_dict


class RelayJSONFormatter(JsonFormatter):
    """Custom JSON formatter for relay logs"""

    def __init__(self, *args: Any, service_name: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if not log_record.get("service"):
            log_record["service"] = getattr(record, "service", self.service_name)

        log_record["level"] = record.levelname

        # Source location
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        if record.exc_info and record.exc_info[0] is not None:
            log_record["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }


class SecurityFilter(logging.Filter):
    """Filter to remove credentials from logs"""

    SENSITIVE_FIELDS = [
        "password",
        "api_key",
        "secret_key",
        "secret_access_key",
        "access_key_id",
        "token",
        "authorization",
        "apikey",
    ]

    # Telegram bot tokens: <bot id>:<35 char secret>
    BOT_TOKEN_PATTERN = re.compile(r"(?<!\d)\d{6,12}:[A-Za-z0-9_-]{30,}")
    # AWS access key ids
    AWS_KEY_PATTERN = re.compile(r"\b(AKIA|ASIA)[A-Z0-9]{16}\b")

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter sensitive information"""
        if isinstance(record.msg, str):
            record.msg = self._mask_sensitive_data(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    key: self._mask_sensitive_data(value) if isinstance(value, str) else value
                    for key, value in record.args.items()
                }
            else:
                record.args = tuple(
                    self._mask_sensitive_data(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _mask_sensitive_data(self, text: str) -> str:
        """Mask sensitive data in text"""
        text = self.BOT_TOKEN_PATTERN.sub("***BOT_TOKEN***", text)
        text = self.AWS_KEY_PATTERN.sub("***AWS_KEY***", text)

        for field in self.SENSITIVE_FIELDS:
            pattern = rf"({field}[\"']?\s*[:=]\s*[\"']?)([^\"'\s,}}]+)"
            text = re.sub(pattern, r"\1***MASKED***", text, flags=re.IGNORECASE)

        return text


def setup_logging(
    service_name: str,
    config: Optional[LoggingConfig] = None,
    environment: str = "development",
    log_level: Optional[str] = None,
) -> None:
    """Setup logging for the relay: stdlib handlers plus structlog on top"""
    config = config or LoggingConfig()
    level = (log_level or config.level).upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            RelayProcessor(service_name, environment),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "level": level,
            "stream": sys.stdout,
            "filters": ["security_filter"],
        },
    }

    if config.enable_file:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["service_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_dir / f"{service_name}.log"),
            "formatter": "json",
            "level": level,
            "maxBytes": config.max_file_size,
            "backupCount": config.backup_count,
            "encoding": "utf-8",
            "filters": ["security_filter"],
        }
        handlers["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_dir / "error.log"),
            "formatter": "json",
            "level": "ERROR",
            "maxBytes": config.max_file_size,
            "backupCount": config.backup_count,
            "encoding": "utf-8",
            "filters": ["security_filter"],
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": RelayJSONFormatter,
                    "format": "%(timestamp)s %(level)s %(logger)s %(message)s",
                    "service_name": service_name,
                },
                "console": {
                    "format": config.format,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"security_filter": {"()": SecurityFilter}},
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": level},
            "loggers": {
                # External libraries
                "httpx": {"level": "WARNING", "propagate": True},
                "httpcore": {"level": "WARNING", "propagate": True},
                "botocore": {"level": "WARNING", "propagate": True},
                "aiobotocore": {"level": "WARNING", "propagate": True},
                "websockets": {"level": "WARNING", "propagate": True},
                "apscheduler": {"level": "WARNING", "propagate": True},
                "asyncio": {"level": "WARNING", "propagate": True},
            },
        }
    )

    logger = structlog.get_logger(service_name)
    logger.info(
        "Logging system initialized",
        service=service_name,
        environment=environment,
        log_level=level,
    )


def get_audit_logger(name: str = "relay_audit") -> Any:
    """Structured logger for the notification audit trail."""
    return structlog.get_logger(name)
