import json
import logging

import requests

from ormagent.utils.logger import DataDogHandler, configure_logging, datadog_handler_from_env


def test_configure_logging_writes_info_file(tmp_path):
    logger = configure_logging(False, log_dir=tmp_path, environ={})
    logging.getLogger("ormagent.test").info("info-from-test")
    logging.getLogger("ormagent.test").debug("debug-from-test")

    for handler in logger.handlers:
        handler.flush()

    content = (tmp_path / "orm-agent.log").read_text(encoding="utf-8")
    assert "info-from-test" in content
    assert "debug-from-test" not in content


def test_datadog_requires_url_and_key():
    assert datadog_handler_from_env({}) is None
    assert datadog_handler_from_env({"DATADOG_API_URL": "https://intake.example"}) is None


def test_datadog_handler_from_env_defaults():
    handler = datadog_handler_from_env({
        "DATADOG_API_URL": "https://intake.example/v1/input",
        "DATADOG_API_KEY": "k",
        "DATADOG_TAGS": "env:edge",
        "HOSTNAME": "gw-eu-001",
    })

    assert handler is not None
    assert handler.source == "orm"
    assert handler.tags == "env:edge"
    assert handler.hostname == "gw-eu-001"


def test_datadog_handler_posts_json(monkeypatch):
    sent = []

    class _Response:
        status_code = 202

    def _post(url, data=None, headers=None, timeout=None):
        sent.append((url, json.loads(data), headers))
        return _Response()

    monkeypatch.setattr(requests, "post", _post)
    handler = DataDogHandler("https://intake.example/v1/input", "secret", service="orm-agent", hostname="gw-1")
    record = logging.LogRecord("ormagent.updater", logging.WARNING, __file__, 1, "swap %s", ("failed",), None)

    handler.emit(record)

    url, body, headers = sent[0]
    assert url == "https://intake.example/v1/input"
    assert headers["DD-API-KEY"] == "secret"
    assert body == [{
        "message": "swap failed",
        "status": "warning",
        "logger": {"name": "ormagent.updater"},
        "ddsource": "orm",
        "hostname": "gw-1",
        "service": "orm-agent",
    }]
