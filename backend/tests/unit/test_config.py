"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from leadflow.config import Settings


def test_defaults(tmp_path) -> None:
    settings = Settings(_env_file=None, data_dir=tmp_path)
    assert settings.pipeline.poll_interval_seconds == 2.0
    assert settings.supabase.jobs_table == "lead_processing_jobs"
    assert settings.data_dir.is_absolute()


def test_environment_overrides_nested_sections(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("PIPELINE__POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None, data_dir=tmp_path)

    assert settings.supabase_url == "https://abc.supabase.co"
    assert settings.pipeline.poll_interval_seconds == 5.0
    assert settings.log_level == "DEBUG"


def test_invalid_log_level(tmp_path) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, data_dir=tmp_path, log_level="chatty")


def test_yaml_config_is_merged(tmp_path) -> None:
    (tmp_path / "config.yaml").write_text(
        "pipeline:\n"
        "  poll_interval_seconds: 10\n"
        "  logs_base_url: https://supabase.com/dashboard/project/abc/functions\n"
        "api:\n"
        "  port: 9000\n",
        encoding="utf-8",
    )
    settings = Settings(_env_file=None, data_dir=tmp_path)
    settings.load_yaml_config()

    assert settings.pipeline.poll_interval_seconds == 10
    assert settings.pipeline.history_limit == 5
    assert settings.pipeline.logs_base_url.endswith("/functions")
    assert settings.api.port == 9000


def test_client_config_uses_credentials(tmp_path) -> None:
    settings = Settings(
        _env_file=None,
        data_dir=tmp_path,
        supabase_url="https://abc.supabase.co/",
        supabase_anon_key="anon",
        supabase={"timeout_seconds": 5},
    )
    config = settings.supabase_client_config()
    assert config.base_url == "https://abc.supabase.co"
    assert config.bearer_token == "anon"
    assert config.timeout_seconds == 5
