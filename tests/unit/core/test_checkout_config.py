"""
Tests for CheckoutConfig: defaults, validation, environment and YAML loading.
"""

from datetime import timedelta

import pytest

from checkout_saga.core import config as config_module
from checkout_saga.core.config import CheckoutConfig, configure, get_config
from checkout_saga.core.env import EnvManager
from checkout_saga.core.exceptions import ConfigurationError
from checkout_saga.core.listeners import (
    CheckoutListener,
    LoggingCheckoutListener,
    MetricsCheckoutListener,
)
from checkout_saga.storage.memory import InMemorySagaStateStore
from checkout_saga.storage.sqlite import SQLiteSagaStateStore


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every CHECKOUT_* variable for the duration of a test."""
    import os

    for key in list(os.environ):
        if key.startswith("CHECKOUT_"):
            monkeypatch.delenv(key)
    return monkeypatch


class TestDefaults:
    """Tests for default settings."""

    def test_default_values(self):
        config = CheckoutConfig()

        assert config.inventory_timeout == 5.0
        assert config.payment_timeout == 10.0
        assert config.journal_timeout == 5.0
        assert config.saga_timeout == 30.0
        assert config.max_retries == 3
        assert config.reservation_ttl == timedelta(minutes=15)
        assert config.currency == "GBP"
        assert config.storage_url == "memory://"

    def test_default_listeners(self):
        """Logging and metrics listeners are on by default."""
        listeners = CheckoutConfig().listeners

        assert [type(listener) for listener in listeners] == [
            LoggingCheckoutListener,
            MetricsCheckoutListener,
        ]

    def test_listeners_disabled(self):
        assert CheckoutConfig(logging=False, metrics=False).listeners == []

    def test_custom_listener_instance_used(self):
        custom = CheckoutListener()
        config = CheckoutConfig(logging=custom, metrics=False)

        assert config.listeners == [custom]

    def test_retry_policy_uses_config_backoff(self):
        config = CheckoutConfig(max_retries=5, retry_backoff_base=0.2, retry_backoff_max=0.5)

        policy = config.retry_policy(timeout=2.0)

        assert policy.timeout == 2.0
        assert policy.max_retries == 5
        assert policy.delay_for(0) == 0.2
        assert policy.delay_for(3) == 0.5

    def test_build_store_from_url(self):
        assert isinstance(CheckoutConfig().build_store(), InMemorySagaStateStore)
        assert isinstance(
            CheckoutConfig(storage_url="sqlite://:memory:").build_store(), SQLiteSagaStateStore
        )

    def test_with_overrides_returns_new_config(self):
        config = CheckoutConfig(logging=False, metrics=False)

        changed = config.with_overrides(payment_timeout=3.0)

        assert changed.payment_timeout == 3.0
        assert config.payment_timeout == 10.0

    def test_to_dict_excludes_listeners(self):
        data = CheckoutConfig().to_dict()

        assert data["payment_timeout"] == 10.0
        assert "logging" not in data
        assert "_listeners" not in data


class TestValidation:
    """Tests for configuration validation."""

    @pytest.mark.parametrize(
        "field", ["inventory_timeout", "payment_timeout", "journal_timeout", "saga_timeout"]
    )
    def test_non_positive_timeout_rejected(self, field):
        with pytest.raises(ConfigurationError) as exc_info:
            CheckoutConfig(**{field: 0})

        assert exc_info.value.details["field"] == field

    def test_negative_retries_rejected(self):
        with pytest.raises(ConfigurationError):
            CheckoutConfig(max_retries=-1)

    def test_zero_retries_allowed(self):
        assert CheckoutConfig(max_retries=0).retry_policy(1.0).max_retries == 0

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ConfigurationError):
            CheckoutConfig(reservation_ttl_seconds=0)

    @pytest.mark.parametrize("ttl", [10, 30])
    def test_ttl_must_outlive_saga_timeout(self, ttl):
        with pytest.raises(ConfigurationError) as exc_info:
            CheckoutConfig(saga_timeout=30.0, reservation_ttl_seconds=ttl)

        assert exc_info.value.details["field"] == "reservation_ttl_seconds"
        assert exc_info.value.details["saga_timeout"] == 30.0

    def test_ttl_above_saga_timeout_allowed(self):
        config = CheckoutConfig(saga_timeout=30.0, reservation_ttl_seconds=31)

        assert config.reservation_ttl_seconds == 31

    def test_empty_currency_rejected(self):
        with pytest.raises(ConfigurationError):
            CheckoutConfig(currency="")


class TestFromEnv:
    """Tests for CheckoutConfig.from_env()."""

    def test_reads_checkout_variables(self, clean_env):
        clean_env.setenv("CHECKOUT_PAYMENT_TIMEOUT", "2.5")
        clean_env.setenv("CHECKOUT_MAX_RETRIES", "1")
        clean_env.setenv("CHECKOUT_RESERVATION_TTL", "60")
        clean_env.setenv("CHECKOUT_CURRENCY", "EUR")
        clean_env.setenv("CHECKOUT_STORAGE_URL", "sqlite://:memory:")
        clean_env.setenv("CHECKOUT_METRICS", "false")

        config = CheckoutConfig.from_env(load_dotenv=False)

        assert config.payment_timeout == 2.5
        assert config.max_retries == 1
        assert config.reservation_ttl == timedelta(seconds=60)
        assert config.currency == "EUR"
        assert config.storage_url == "sqlite://:memory:"
        assert config.metrics is False

    def test_defaults_when_unset(self, clean_env):
        config = CheckoutConfig.from_env(load_dotenv=False)

        assert config.inventory_timeout == 5.0
        assert config.storage_url == "memory://"

    def test_unparseable_number_falls_back_to_default(self, clean_env):
        clean_env.setenv("CHECKOUT_SAGA_TIMEOUT", "soon")

        assert CheckoutConfig.from_env(load_dotenv=False).saga_timeout == 30.0

    def test_invalid_value_rejected(self, clean_env):
        clean_env.setenv("CHECKOUT_INVENTORY_TIMEOUT", "-1")

        with pytest.raises(ConfigurationError):
            CheckoutConfig.from_env(load_dotenv=False)


class TestFromFile:
    """Tests for CheckoutConfig.from_file()."""

    def test_loads_yaml(self, tmp_path, clean_env):
        path = tmp_path / "checkout.yaml"
        path.write_text(
            """
checkout:
  currency: USD
  timeouts:
    inventory: 1
    payment: 2
    saga: 9
  retry:
    max_retries: 4
    backoff_base: 0.01
  reservations:
    ttl_seconds: 120
  in_progress_wait: 0.5
storage:
  url: memory://
observability:
  logging:
    enabled: false
"""
        )

        config = CheckoutConfig.from_file(path)

        assert config.currency == "USD"
        assert config.inventory_timeout == 1.0
        assert config.payment_timeout == 2.0
        assert config.journal_timeout == 5.0
        assert config.saga_timeout == 9.0
        assert config.max_retries == 4
        assert config.retry_backoff_base == 0.01
        assert config.reservation_ttl_seconds == 120
        assert config.in_progress_wait == 0.5
        assert config.logging is False
        assert config.metrics is True

    def test_substitutes_environment(self, tmp_path, clean_env):
        clean_env.setenv("CHECKOUT_DB", "sqlite:///./data/test.db")
        path = tmp_path / "checkout.yaml"
        path.write_text(
            "storage:\n"
            "  url: ${CHECKOUT_DB}\n"
            "checkout:\n"
            "  currency: ${CHECKOUT_TEST_CURRENCY:-GBP}\n"
        )

        config = CheckoutConfig.from_file(path)

        assert config.storage_url == "sqlite:///./data/test.db"
        assert config.currency == "GBP"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert CheckoutConfig.from_file(path).payment_timeout == 10.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CheckoutConfig.from_file(tmp_path / "missing.yaml")

    def test_bad_number_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("checkout:\n  timeouts:\n    payment: fast\n")

        with pytest.raises(ConfigurationError):
            CheckoutConfig.from_file(path)


class TestGlobalConfig:
    """Tests for get_config() / configure()."""

    def test_configure_replaces_global(self, monkeypatch):
        monkeypatch.setattr(config_module, "_global_config", None)
        custom = CheckoutConfig(payment_timeout=1.0, logging=False, metrics=False)

        configure(custom)

        assert get_config() is custom

    def test_get_config_creates_default(self, monkeypatch):
        monkeypatch.setattr(config_module, "_global_config", None)

        assert get_config().payment_timeout == 10.0


class TestEnvManager:
    """Tests for environment substitution."""

    def test_substitute_default_and_required(self, clean_env):
        env = EnvManager()
        clean_env.setenv("CHECKOUT_TEST_HOST", "db.local")

        assert env.substitute("${CHECKOUT_TEST_HOST}") == "db.local"
        assert env.substitute("${CHECKOUT_TEST_PORT:-5432}") == "5432"
        assert env.substitute("${CHECKOUT_TEST_UNSET}") == "${CHECKOUT_TEST_UNSET}"

        with pytest.raises(ConfigurationError, match="port needed"):
            env.substitute("${CHECKOUT_TEST_PORT:?port needed}")

    def test_get_bool(self, clean_env):
        env = EnvManager()
        clean_env.setenv("CHECKOUT_TEST_FLAG", "yes")

        assert env.get_bool("CHECKOUT_TEST_FLAG") is True
        assert env.get_bool("CHECKOUT_TEST_MISSING", default=True) is True

    def test_required_variable(self, clean_env):
        with pytest.raises(ConfigurationError):
            EnvManager().get("CHECKOUT_TEST_MISSING", required=True)

    def test_load_dotenv_file(self, tmp_path, clean_env):
        (tmp_path / ".env").write_text("CHECKOUT_TEST_FROM_FILE=loaded\n")
        clean_env.setenv("CHECKOUT_TEST_FROM_FILE", "stale")
        env = EnvManager(project_root=tmp_path)

        assert env.load(override=True) is True
        assert env.get("CHECKOUT_TEST_FROM_FILE") == "loaded"

    def test_load_missing_dotenv(self, tmp_path):
        assert EnvManager(project_root=tmp_path).load() is False
