import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("OCTWALLET_LOG_FILE", "/tmp/octwallet.log")

# Third-party loggers held at WARNING; httpx logs every request at INFO
QUIET = ("httpx", "httpcore", "uvicorn.access")


def logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers = ["console", "file"] if log_file else ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "octwallet": {"level": level, "handlers": handlers, "propagate": False},
            **{name: {"level": "WARNING", "handlers": handlers, "propagate": False} for name in QUIET},
        },
        "root": {"level": "WARNING", "handlers": handlers},
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
    return config


def setup_logging(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE):
    """ Apply the logging configuration. An empty ``log_file`` logs to stdout only. """
    logging.config.dictConfig(logging_config(level, log_file or None))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
