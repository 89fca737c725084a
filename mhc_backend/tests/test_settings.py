from __future__ import annotations

import logging

from mhc_backend.config.settings import (
    ExternalApiConfig,
    MediaStorageConfig,
    Settings,
    StorageConfig,
)
from mhc_backend.config.validators import (
    CompositeConfigValidator,
    MediaStorageConfigValidator,
    SchedulerConfigValidator,
    validate_settings,
)
from mhc_backend.utils.logging import setup_logging

YAML = """
scheduler_timezone: Asia/Shanghai
log_level: DEBUG
storage:
  db_path: {db_path}
media:
  primary: docker
  providers:
    docker: {media}
external:
  affiliate_wm: abc12
jobs:
  statbate-refresh:
    interval_minutes: 120
    batch_size: 10
  broken: 5
"""


def _write(tmp_path):
    path = tmp_path / "mhc.yaml"
    path.write_text(
        YAML.format(db_path=tmp_path / "x.db", media=tmp_path / "media"),
        encoding="utf-8",
    )
    return path


def test_from_yaml(tmp_path, monkeypatch):
    monkeypatch.delenv("MHC_DB_PATH", raising=False)
    monkeypatch.delenv("MHC_LOG_LEVEL", raising=False)

    settings = Settings.from_yaml(_write(tmp_path))

    assert settings.scheduler_timezone == "Asia/Shanghai"
    assert settings.log_level == "DEBUG"
    assert settings.storage.db_path == str(tmp_path / "x.db")
    assert settings.external.affiliate_wm == "abc12"
    assert settings.job_overrides("statbate-refresh") == {
        "interval_minutes": 120,
        "batch_size": 10,
    }
    assert settings.job_overrides("broken") == {}
    assert settings.job_overrides("cbhours-polling") == {}


def test_missing_file_falls_back_to_defaults(tmp_path):
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.scheduler_timezone == "UTC"
    assert settings.media.primary == "docker"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("MHC_DB_PATH", "/tmp/override.db")
    monkeypatch.setenv("MHC_STATBATE_TOKEN", "tok")
    monkeypatch.setenv("MHC_LOG_LEVEL", "WARNING")

    settings = Settings.from_yaml(_write(tmp_path))

    assert settings.storage.db_path == "/tmp/override.db"
    assert settings.external.statbate_token == "tok"
    assert settings.log_level == "WARNING"
    assert StorageConfig().db_path == "/tmp/override.db"
    assert ExternalApiConfig().statbate_token == "tok"


def test_valid_settings(tmp_path, monkeypatch):
    monkeypatch.delenv("MHC_DB_PATH", raising=False)
    settings = Settings.from_yaml(_write(tmp_path))

    result = CompositeConfigValidator().validate(settings)

    assert result.is_valid, result.errors


def test_media_validator():
    result = MediaStorageConfigValidator().validate(
        MediaStorageConfig(
            providers={"docker": "/data"}, primary="ssd", destination_preference=["s3"]
        )
    )
    assert not result.is_valid
    assert any("ssd" in e for e in result.errors)
    assert any("s3" in w for w in result.warnings)


def test_scheduler_validator():
    settings = Settings(
        scheduler_timezone="Mars/Olympus",
        jobs={"a": {"interval_minutes": 0}, "b": {"interval_minutes": 2000}},
    )

    result = SchedulerConfigValidator().validate(settings)

    assert not result.is_valid
    assert len(result.errors) == 1
    assert len(result.warnings) == 2


def test_validate_settings_logs(tmp_path, caplog, monkeypatch):
    monkeypatch.delenv("MHC_DB_PATH", raising=False)
    settings = Settings(
        storage=StorageConfig(db_path=str(tmp_path / "x.db")),
        jobs={"a": {"interval_minutes": -1}},
    )

    with caplog.at_level(logging.WARNING, logger="mhc.config.validators"):
        result = validate_settings(settings)

    assert not result.is_valid
    assert "interval_minutes" in caplog.text


def test_setup_logging_updates_level():
    logger = setup_logging("DEBUG")
    assert logger.name == "mhc"
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("apscheduler").level == logging.WARNING

    setup_logging("bogus")
    assert logging.getLogger().level == logging.INFO
