import json

from vouchersync.app.config import ENV_VAR, SyncSettings, load_config, resolve_environment
from vouchersync.infrastructure.db import get_path_config


def test_missing_config_file_means_defaults(tmp_path) -> None:
    assert load_config(tmp_path / "absent.json") == {}
    settings = SyncSettings.from_config({})
    assert settings.sync_interval_ms == 300_000
    assert settings.group_page_size == 100
    assert settings.voucher_page_size == 1000
    assert settings.default_currency == "BRL"


def test_tls_verification_depends_on_environment(monkeypatch) -> None:
    monkeypatch.delenv(ENV_VAR, raising=False)
    assert SyncSettings.from_config({}).verify_tls is True
    assert SyncSettings.from_config({"environment": "development"}).verify_tls is False
    assert (
        SyncSettings.from_config(
            {"environment": "development", "omada": {"verify_tls": True}}
        ).verify_tls
        is True
    )


def test_environment_variable_wins(monkeypatch) -> None:
    monkeypatch.setenv(ENV_VAR, "Test")
    assert resolve_environment({"environment": "production"}) == "test"


def test_settings_read_from_file(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv(ENV_VAR, raising=False)
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "sync": {"interval_seconds": 60, "default_currency": "USD", "max_site_workers": 4},
                "omada": {"voucher_page_size": 500, "retry_attempts": 0},
                "paths": {"db_path": "data/sync.db"},
            }
        ),
        encoding="utf-8",
    )

    settings = SyncSettings.from_config(load_config(path))

    assert settings.sync_interval_ms == 60_000
    assert settings.default_currency == "USD"
    assert settings.max_site_workers == 4
    assert settings.voucher_page_size == 500
    assert settings.retry_attempts == 1
    assert get_path_config(path)["db_path"] == (tmp_path / "data" / "sync.db").resolve()
