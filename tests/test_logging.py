import json
import logging
from pathlib import Path

from fizzy.obs.logging import JsonLineFormatter, LogSettings, build_logger, log_event, mask_url


def test_json_line_formatter_structure() -> None:
    record = logging.LogRecord("fizzy.cli", logging.WARNING, __file__, 1, "Retrying GET", None, None)
    record.event = "http_retry"
    record.extra = {"attempt": 1, "delay_s": 1.0}

    payload = json.loads(JsonLineFormatter().format(record))

    assert payload["event"] == "http_retry"
    assert payload["level"] == "WARNING"
    assert payload["msg"] == "Retrying GET"
    assert payload["extra"] == {"attempt": 1, "delay_s": 1.0}
    assert payload["ts"].endswith("Z")


def test_build_logger_writes_jsonl_file(tmp_path: Path) -> None:
    log_file = tmp_path / "fizzy.log"
    logger = build_logger(LogSettings(level="DEBUG", log_file=log_file))

    log_event(logger, logging.INFO, "http_request", "GET boards", status="200")
    for handler in logger.handlers:
        handler.flush()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["extra"] == {"status": "200"}
    assert logger.propagate is False

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_mask_url_hides_tokens() -> None:
    masked = mask_url("https://app.fizzy.do/acme/boards?page=2&token=secret")

    assert "secret" not in masked
    assert "page=2" in masked
    assert mask_url("https://app.fizzy.do/acme/boards") == "https://app.fizzy.do/acme/boards"
    assert mask_url("http://[bad") == "http://[bad"
