"""
Root test conftest — isolate ERGODIC_* environment variables so that
Settings() in tests behaves as if only field defaults and explicit
arguments are present.
"""
import pytest

_ERGODIC_ENV_VARS = [
    "ERGODIC_CONFIG",
    "ERGODIC_VAULT__PATH",
    "ERGODIC_VAULT__EXCLUDED_PATHS",
    "ERGODIC_VAULT__EXCLUDED_TAGS",
    "ERGODIC_WALK__JUMP_INTERVAL_S",
    "ERGODIC_WALK__SHOW_TIMER_BAR",
    "ERGODIC_LOGGING__LEVEL",
]


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch):
    """Remove Ergodic env vars for every test and disable .env file loading
    so a developer's local .env never leaks into test expectations."""
    for var in _ERGODIC_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_prefix="ERGODIC_",
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    monkeypatch.setattr(settings_module, "_singleton", None)
