import atexit
import json
import logging
import logging.handlers
import os
import queue
import socket
from pathlib import Path
from typing import Mapping, Optional

import requests  # type: ignore[import-untyped]


LOG_FILE_NAME = "orm-agent.log"
DEFAULT_DATADOG_SOURCE = "orm"

_QUEUE_LISTENER: dict[str, Optional[logging.handlers.QueueListener]] = {"listener": None}


class DataDogHandler(logging.Handler):
    """Ship log records to the DataDog HTTP intake."""

    def __init__(
        self,
        url: str,
        api_key: str,
        service: Optional[str] = None,
        source: str = DEFAULT_DATADOG_SOURCE,
        tags: Optional[str] = None,
        hostname: Optional[str] = None,
        timeout: float = 5.0,
    ):
        super().__init__()
        self.url = url
        self.api_key = api_key
        self.service = service
        self.source = source
        self.tags = tags
        self.hostname = hostname or socket.gethostname()
        self.timeout = timeout

    def payload(self, record: logging.LogRecord) -> dict:
        entry = {
            "message": self.format(record),
            "status": record.levelname.lower(),
            "logger": {"name": record.name},
            "ddsource": self.source,
            "hostname": self.hostname,
        }
        if self.service:
            entry["service"] = self.service
        if self.tags:
            entry["ddtags"] = self.tags
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            response = requests.post(
                self.url,
                data=json.dumps([self.payload(record)]),
                headers={"Content-Type": "application/json", "DD-API-KEY": self.api_key},
                timeout=self.timeout,
            )
            if response.status_code >= 400:
                raise requests.HTTPError(f"DataDog intake returned HTTP {response.status_code}")
        except (requests.RequestException, ValueError):
            self.handleError(record)


def datadog_handler_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[DataDogHandler]:
    env = os.environ if environ is None else environ
    url = env.get("DATADOG_API_URL", "").strip()
    api_key = env.get("DATADOG_API_KEY", "").strip()
    if not url or not api_key:
        return None
    return DataDogHandler(
        url,
        api_key,
        service=env.get("DATADOG_SERVICE") or None,
        source=env.get("DATADOG_SOURCE") or DEFAULT_DATADOG_SOURCE,
        tags=env.get("DATADOG_TAGS") or None,
        hostname=env.get("HOSTNAME") or None,
    )


def _stop_queue_listener() -> None:
    listener = _QUEUE_LISTENER.get("listener")
    if listener is not None:
        listener.stop()
        _QUEUE_LISTENER["listener"] = None


def configure_logging(
    debug: bool,
    log_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    logger = logging.getLogger()
    _stop_queue_listener()
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.warning("Log directory %s is not writable; file logging disabled", log_dir)
        else:
            file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    datadog = datadog_handler_from_env(environ)
    if datadog is not None:
        # Shipped from the listener thread only.
        datadog.setLevel(logging.INFO)
        datadog.setFormatter(logging.Formatter("%(message)s"))
        records: queue.Queue = queue.Queue(-1)
        queue_handler = logging.handlers.QueueHandler(records)
        queue_handler.setLevel(logging.INFO)
        logger.addHandler(queue_handler)
        listener = logging.handlers.QueueListener(records, datadog, respect_handler_level=True)
        listener.start()
        _QUEUE_LISTENER["listener"] = listener
        atexit.register(_stop_queue_listener)

    return logger
