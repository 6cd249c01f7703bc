import pytest

from ripple.config import Config, validate_config
from ripple.metrics import MetricsRegistry
from ripple.state import AppState

CONFIG_ENV_VARS = [
    str(info.validation_alias) for info in Config.model_fields.values()
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment out of every test."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch


def make_config(**overrides) -> Config:
    """
    A valid Config with `overrides` applied by field name.

    The overrides are re-validated, so invalid values raise the same
    ConfigurationError load_config() would.
    """
    base = Config(_env_file=None, RIPPLE_WORKERS=4)
    config = base.model_copy(update=overrides)
    validate_config(config)
    return config


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def metrics() -> MetricsRegistry:
    registry = MetricsRegistry()
    registry.register_all()
    return registry


@pytest.fixture
def app_state(config) -> AppState:
    return AppState(config=config)


@pytest.fixture
def config_factory():
    return make_config
