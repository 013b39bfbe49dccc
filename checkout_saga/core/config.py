"""
CheckoutConfig - Unified configuration for the checkout saga.

Provides a single configuration object that wires together:
- Per-call timeouts and the overall saga deadline
- Bounded retry policy for transient collaborator failures
- Reservation TTL and sweep interval
- Saga state storage
- Observability listeners

Example:
    >>> from checkout_saga import CheckoutConfig, configure
    >>>
    >>> config = CheckoutConfig(
    ...     payment_timeout=8.0,
    ...     storage_url="sqlite:///./sagas.db",
    ... )
    >>> configure(config)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from checkout_saga.core.exceptions import ConfigurationError
from checkout_saga.core.retry import RetryPolicy
from checkout_saga.core.types import DEFAULT_CURRENCY

if TYPE_CHECKING:
    from checkout_saga.core.listeners import CheckoutListener
    from checkout_saga.storage.base import SagaStateStore

logger = logging.getLogger(__name__)

_ENV_FLOATS = {
    "inventory_timeout": "CHECKOUT_INVENTORY_TIMEOUT",
    "payment_timeout": "CHECKOUT_PAYMENT_TIMEOUT",
    "journal_timeout": "CHECKOUT_JOURNAL_TIMEOUT",
    "saga_timeout": "CHECKOUT_SAGA_TIMEOUT",
    "retry_backoff_base": "CHECKOUT_RETRY_BACKOFF_BASE",
    "retry_backoff_max": "CHECKOUT_RETRY_BACKOFF_MAX",
    "sweep_interval_seconds": "CHECKOUT_SWEEP_INTERVAL",
    "in_progress_wait": "CHECKOUT_IN_PROGRESS_WAIT",
}

_ENV_INTS = {
    "max_retries": "CHECKOUT_MAX_RETRIES",
    "reservation_ttl_seconds": "CHECKOUT_RESERVATION_TTL",
}


@dataclass
class CheckoutConfig:
    """
    Configuration for checkout orchestration.

    Attributes:
        inventory_timeout: Seconds allowed per inventory ledger call
        payment_timeout: Seconds allowed per payment gateway call
        journal_timeout: Seconds allowed per order journal / cart call
        saga_timeout: Overall deadline for reserve -> charge -> create order
        max_retries: Retries for transient failures (attempts = max_retries + 1)
        retry_backoff_base: First backoff delay in seconds (doubles each retry)
        retry_backoff_max: Upper bound for a single backoff delay
        reservation_ttl_seconds: How long a Held reservation lives
        sweep_interval_seconds: Interval of the reservation expiry sweep
        in_progress_wait: How long a duplicate caller waits for a running saga
        currency: Currency for payment requests and orders
        storage_url: Saga state storage (memory://, sqlite:///path)
        logging: Enable LoggingCheckoutListener (bool or listener instance)
        metrics: Enable MetricsCheckoutListener (bool or listener instance)
    """

    inventory_timeout: float = 5.0
    payment_timeout: float = 10.0
    journal_timeout: float = 5.0
    saga_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff_base: float = 0.05
    retry_backoff_max: float = 1.0
    reservation_ttl_seconds: int = 900
    sweep_interval_seconds: float = 60.0
    in_progress_wait: float = 5.0
    currency: str = DEFAULT_CURRENCY
    storage_url: str = "memory://"

    logging: bool | CheckoutListener = True
    metrics: bool | CheckoutListener = True

    _listeners: list[CheckoutListener] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self._validate()
        self._listeners = self._build_listeners()

    def _validate(self) -> None:
        for name in (
            "inventory_timeout",
            "payment_timeout",
            "journal_timeout",
            "saga_timeout",
            "sweep_interval_seconds",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive"
                raise ConfigurationError(msg, details={"field": name, "value": getattr(self, name)})

        if self.max_retries < 0:
            msg = "max_retries must not be negative"
            raise ConfigurationError(msg, details={"field": "max_retries"})
        if self.retry_backoff_base < 0 or self.retry_backoff_max < 0:
            msg = "retry backoff must not be negative"
            raise ConfigurationError(msg, details={"field": "retry_backoff"})
        if self.reservation_ttl_seconds <= 0:
            msg = "reservation_ttl_seconds must be positive"
            raise ConfigurationError(msg, details={"field": "reservation_ttl_seconds"})
        if self.reservation_ttl_seconds <= self.saga_timeout:
            msg = "reservation_ttl_seconds must exceed saga_timeout"
            raise ConfigurationError(
                msg,
                details={
                    "field": "reservation_ttl_seconds",
                    "value": self.reservation_ttl_seconds,
                    "saga_timeout": self.saga_timeout,
                },
            )
        if self.in_progress_wait < 0:
            msg = "in_progress_wait must not be negative"
            raise ConfigurationError(msg, details={"field": "in_progress_wait"})
        if not self.currency:
            msg = "currency must be set"
            raise ConfigurationError(msg, details={"field": "currency"})

    def _build_listeners(self) -> list[CheckoutListener]:
        from checkout_saga.core.listeners import (
            CheckoutListener,
            LoggingCheckoutListener,
            MetricsCheckoutListener,
        )

        listeners: list[CheckoutListener] = []

        if isinstance(self.logging, CheckoutListener):
            listeners.append(self.logging)
        elif self.logging:
            listeners.append(LoggingCheckoutListener())

        if isinstance(self.metrics, CheckoutListener):
            listeners.append(self.metrics)
        elif self.metrics:
            listeners.append(MetricsCheckoutListener())

        return listeners

    @property
    def listeners(self) -> list[CheckoutListener]:
        return self._listeners

    @property
    def reservation_ttl(self) -> timedelta:
        return timedelta(seconds=self.reservation_ttl_seconds)

    def retry_policy(self, timeout: float) -> RetryPolicy:
        """Retry policy for a collaborator call with the given timeout."""
        return RetryPolicy(
            timeout=timeout,
            max_retries=self.max_retries,
            backoff_base=self.retry_backoff_base,
            backoff_max=self.retry_backoff_max,
        )

    def build_store(self) -> SagaStateStore:
        """Create the saga state store described by storage_url."""
        from checkout_saga.storage.factory import create_state_store

        return create_state_store(self.storage_url)

    def with_overrides(self, **changes: Any) -> CheckoutConfig:
        """Create a new config with some values changed (immutable update)."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Plain settings, without listener instances."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if not f.name.startswith("_") and f.name not in ("logging", "metrics")
        }

    @classmethod
    def from_env(cls, load_dotenv: bool = True) -> CheckoutConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            CHECKOUT_INVENTORY_TIMEOUT, CHECKOUT_PAYMENT_TIMEOUT,
            CHECKOUT_JOURNAL_TIMEOUT, CHECKOUT_SAGA_TIMEOUT: seconds
            CHECKOUT_MAX_RETRIES, CHECKOUT_RETRY_BACKOFF_BASE,
            CHECKOUT_RETRY_BACKOFF_MAX: retry policy
            CHECKOUT_RESERVATION_TTL, CHECKOUT_SWEEP_INTERVAL: reservations
            CHECKOUT_IN_PROGRESS_WAIT: duplicate-caller wait
            CHECKOUT_CURRENCY, CHECKOUT_STORAGE_URL
            CHECKOUT_LOGGING, CHECKOUT_METRICS: true/false
        """
        from checkout_saga.core.env import get_env

        env = get_env()
        if load_dotenv:
            env.load()

        defaults = cls.__dataclass_fields__
        values: dict[str, Any] = {}

        for name, var in _ENV_FLOATS.items():
            values[name] = env.get_float(var, defaults[name].default)
        for name, var in _ENV_INTS.items():
            values[name] = env.get_int(var, defaults[name].default)

        values["currency"] = env.get("CHECKOUT_CURRENCY", DEFAULT_CURRENCY)
        values["storage_url"] = env.get("CHECKOUT_STORAGE_URL", "memory://")
        values["logging"] = env.get_bool("CHECKOUT_LOGGING", True)
        values["metrics"] = env.get_bool("CHECKOUT_METRICS", True)

        return cls(**values)

    @classmethod
    def from_file(cls, file_path: str | Path, substitute_env: bool = True) -> CheckoutConfig:
        """
        Load configuration from a YAML file.

        Supports ${VAR}, ${VAR:-default} and ${VAR:?error} substitution.

        Example file:
            checkout:
              currency: GBP
              timeouts: {inventory: 5, payment: 10, journal: 5, saga: 30}
              retry: {max_retries: 3, backoff_base: 0.05, backoff_max: 1.0}
              reservations: {ttl_seconds: 900, sweep_interval_seconds: 60}
            storage:
              url: sqlite:///./sagas.db
            observability:
              logging: {enabled: true}
              metrics: {enabled: true}
        """
        from checkout_saga.core.env import get_env

        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        if not data:
            return cls()

        if substitute_env:
            env = get_env()
            env.load()
            data = env.substitute_dict(data)

        return cls(**cls._values_from_mapping(data))

    @staticmethod
    def _values_from_mapping(data: dict[str, Any]) -> dict[str, Any]:
        checkout = data.get("checkout", {}) or {}
        timeouts = checkout.get("timeouts", {}) or {}
        retry = checkout.get("retry", {}) or {}
        reservations = checkout.get("reservations", {}) or {}
        storage = data.get("storage", {}) or {}
        observability = data.get("observability", {}) or {}

        values: dict[str, Any] = {}
        mapping = [
            (timeouts, "inventory", "inventory_timeout", float),
            (timeouts, "payment", "payment_timeout", float),
            (timeouts, "journal", "journal_timeout", float),
            (timeouts, "saga", "saga_timeout", float),
            (retry, "max_retries", "max_retries", int),
            (retry, "backoff_base", "retry_backoff_base", float),
            (retry, "backoff_max", "retry_backoff_max", float),
            (reservations, "ttl_seconds", "reservation_ttl_seconds", int),
            (reservations, "sweep_interval_seconds", "sweep_interval_seconds", float),
            (checkout, "in_progress_wait", "in_progress_wait", float),
            (checkout, "currency", "currency", str),
            (storage, "url", "storage_url", str),
        ]
        for section, key, name, cast in mapping:
            if key in section and section[key] is not None:
                try:
                    values[name] = cast(section[key])
                except (TypeError, ValueError) as e:
                    msg = f"Invalid value for {name}: {section[key]!r}"
                    raise ConfigurationError(msg, details={"field": name}) from e

        values["logging"] = bool(observability.get("logging", {}).get("enabled", True))
        values["metrics"] = bool(observability.get("metrics", {}).get("enabled", True))
        return values


_global_config: CheckoutConfig | None = None


def get_config() -> CheckoutConfig:
    """Get the global checkout configuration."""
    global _global_config
    if _global_config is None:
        _global_config = CheckoutConfig()
    return _global_config


def configure(config: CheckoutConfig) -> None:
    """Set the global checkout configuration."""
    global _global_config
    _global_config = config
    logger.info(f"Checkout configured: storage={config.storage_url}")
