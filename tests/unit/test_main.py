"""
Test the command-line entry point against a temp-file store.
"""
import json

import pytest

from main import main, parse_fields


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.delenv("NOTIFY_CONFIG_PATH", raising=False)
    monkeypatch.delenv("NOTIFY_LOCK_PATH", raising=False)
    monkeypatch.delenv("NOTIFY_TIMEZONE", raising=False)
    monkeypatch.delenv("NOTIFICATION_DRY_RUN", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        f"store:\n  path: {tmp_path / 'notifications.yaml'}\n"
        "evaluation:\n  timezone: UTC\n"
    )
    return str(path)


def test_targets(settings, capsys):
    assert main(["--config", settings, "targets"]) == 0
    assert json.loads(capsys.readouterr().out) == [{"name": "mail-to-root", "type": "sendmail"}]


def test_digest_is_stable(settings, capsys):
    main(["--config", settings, "digest"])
    first = json.loads(capsys.readouterr().out)["digest"]
    main(["--config", settings, "digest"])
    assert json.loads(capsys.readouterr().out)["digest"] == first
    assert len(first) == 64


def test_match(settings, capsys):
    assert main([
        "--config", settings, "match",
        "--severity", "error", "--field", "host=pve1", "--timestamp", "2024-01-01T12:00:00+00:00",
    ]) == 0
    assert json.loads(capsys.readouterr().out) == ["mail-to-root"]


def test_test_target_without_channel_fails(settings, capsys):
    assert main(["--config", settings, "test-target", "mail-to-root"]) == 1
    error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert error["kind"] == "delivery"


def test_test_target_unknown(settings, capsys):
    assert main(["--config", settings, "test-target", "ghost"]) == 1
    error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert error["code"] == 404


def test_parse_fields():
    assert parse_fields(["host=pve1", "title=a=b"]) == {"host": "pve1", "title": "a=b"}
    assert parse_fields(None) == {}


def test_invalid_timestamp_is_usage_error(settings, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--config", settings, "match", "--timestamp", "yesterday-ish"])
    assert exc_info.value.code == 2
    assert "invalid timestamp" in capsys.readouterr().err
