from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cutline.circuit_breaker import CircuitBreakerConfig
from cutline.logging import get_log_level_value
from cutline.retry import (
    DEFAULT_RETRYABLE_ERRORS,
    DEFAULT_RETRYABLE_STATUS_CODES,
    RetryConfig,
)


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class CutlineSettings(BaseSettings):
    """Environment-driven retry, circuit breaker and logging settings.

    Every field reads from ``CUTLINE_<FIELD>``. Collection fields accept JSON
    lists, for example ``CUTLINE_RETRY_RETRYABLE_STATUS_CODES=[429,503]``.
    """

    model_config = prefixed_settings_config("CUTLINE_")

    retry_max_retries: int = 3
    retry_delay_seconds: float = 1.0
    retry_backoff_multiplier: float = 2.0
    retry_retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    retry_retryable_errors: frozenset[str] = DEFAULT_RETRYABLE_ERRORS
    retry_jitter_factor: float = 0.0

    breaker_failure_threshold: int = 5
    breaker_recovery_timeout_seconds: float = 60.0
    breaker_monitoring_period_seconds: float = 60.0
    breaker_expected_errors: frozenset[int] = frozenset({500, 502, 503, 504})

    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    @field_validator("retry_retryable_errors", mode="before")
    @classmethod
    def _normalize_error_codes(cls, value: object, info: ValidationInfo) -> object:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set, frozenset)):
            normalized = [str(item).strip().upper() for item in value]
            if any(not item for item in normalized):
                raise ValueError(f"{info.field_name} must not contain empty codes")
            return normalized
        return value

    @model_validator(mode="after")
    def _validate_cutline_settings(self) -> CutlineSettings:
        if self.retry_max_retries < 0:
            raise ValueError("retry_max_retries must be >= 0")
        if self.retry_delay_seconds <= 0:
            raise ValueError("retry_delay_seconds must be > 0")
        if self.retry_backoff_multiplier <= 0:
            raise ValueError("retry_backoff_multiplier must be > 0")
        if self.retry_jitter_factor < 0:
            raise ValueError("retry_jitter_factor must be >= 0")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_recovery_timeout_seconds <= 0:
            raise ValueError("breaker_recovery_timeout_seconds must be > 0")
        if self.breaker_monitoring_period_seconds < 0:
            raise ValueError("breaker_monitoring_period_seconds must be >= 0")
        return self

    def retry_config(self) -> RetryConfig:
        """Build the retry configuration described by these settings."""
        return RetryConfig(
            max_retries=self.retry_max_retries,
            retry_delay=self.retry_delay_seconds,
            backoff_multiplier=self.retry_backoff_multiplier,
            retryable_status_codes=self.retry_retryable_status_codes,
            retryable_errors=self.retry_retryable_errors,
            jitter_factor=self.retry_jitter_factor,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        """Build the circuit breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            recovery_timeout=self.breaker_recovery_timeout_seconds,
            monitoring_period=self.breaker_monitoring_period_seconds,
            expected_errors=self.breaker_expected_errors,
        )
