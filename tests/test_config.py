from app.config import Settings


def test_defaults(monkeypatch) -> None:
    for name in ("DEFAULT_PAGE_SIZE", "MAX_PAGE_SIZE", "BULK_ACTIVATE_MAX_IDS", "PROFILE_CACHE_ENABLED"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.default_page_size == 50
    assert settings.max_page_size == 500
    assert settings.bulk_activate_max_ids == 50
    assert settings.profile_cache_enabled is True
    assert settings.profile_expiry_sweep_actor == "system:expiry-sweep"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("FRONTEND_ORIGINS", "https://console.example.com, https://ops.example.com ,")
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    monkeypatch.setenv("PROFILE_CACHE_TTL_SECONDS", "5")
    monkeypatch.setenv("ENABLE_PROFILE_EXPIRY_SWEEP", "true")

    settings = Settings(_env_file=None)

    assert settings.frontend_origins == ["https://console.example.com", "https://ops.example.com"]
    assert settings.log_level == "DEBUG"
    assert settings.profile_cache_ttl_seconds == 5
    assert settings.enable_profile_expiry_sweep is True
