import json

import structlog

from static_deployer.utils.logging import bind_deploy_context, setup_logging


def test_structured_logs_include_deployment(capsys):
    setup_logging("INFO", "json")
    bind_deploy_context("demo")

    logger = structlog.get_logger()
    logger.info("test_event", foo="bar")
    out = capsys.readouterr().out.strip().splitlines()[-1]
    data = json.loads(out)
    assert data["event"] == "test_event"
    assert data["deployment"] == "demo"
    assert data["foo"] == "bar"
    assert data["level"] == "info"


def test_redaction(capsys):
    setup_logging("INFO", "json")
    bind_deploy_context(None)
    logger = structlog.get_logger()
    logger.info("leak_test", password="secret", fileData="aGVsbG8=")
    out = capsys.readouterr().out.strip().splitlines()[-1]
    data = json.loads(out)
    assert data["password"] == "[REDACTED]"
    assert data["fileData"] == "[REDACTED]"
    assert "deployment" not in data


def test_level_filtering(capsys):
    setup_logging("WARNING", "json")
    logger = structlog.get_logger()
    logger.info("hidden")
    logger.warning("shown")
    lines = capsys.readouterr().out.strip().splitlines()
    events = [json.loads(line)["event"] for line in lines]
    assert events == ["shown"]
