import pytest
from services.api.app.services.kv_factory import get_kv_store
from services.api.app.settings import Settings, get_settings


def test_settings_read_env_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SW_API_KEY", '"abc"')
    monkeypatch.delenv("INTAKE_TEMPLATE_ID", raising=False)
    monkeypatch.setenv("INTAKE_WAIVER_ID", "T-IN")
    monkeypatch.setenv("LIABILITY_TEMPLATE_ID", "T-LI")
    monkeypatch.setenv("WAIVERDESK_STORE_CAPACITY", "not-a-number")
    monkeypatch.setenv("WAIVERDESK_FIELD_IDS", '{"weight": "abc", "height_feet": ["f1", "f2"]}')

    settings = get_settings()

    assert settings.sw_api_key == "abc"
    assert settings.intake_template_id == "T-IN"
    assert settings.store_capacity == 500
    assert settings.field_ids == {"weight": ["abc"], "height_feet": ["f1", "f2"]}
    assert settings.missing_waiver_config() == []


def test_missing_waiver_config_lists_names() -> None:
    assert Settings().missing_waiver_config() == [
        "SW_API_KEY",
        "INTAKE_TEMPLATE_ID",
        "LIABILITY_TEMPLATE_ID",
    ]


def test_kv_factory_defaults_to_sql() -> None:
    assert get_kv_store(Settings()).backend == "sql"


def test_kv_factory_requires_redis_url() -> None:
    with pytest.raises(ValueError, match="REDIS_URL"):
        get_kv_store(Settings(kv_backend="redis"))


def test_kv_factory_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="Unknown WAIVERDESK_KV_BACKEND"):
        get_kv_store(Settings(kv_backend="floppy"))
