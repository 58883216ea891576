"""
Tests for configuration management in `mchcs/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Rule thresholds and dictionary names from the environment
- get_config cache behavior
- Validation (debug only in development, non-empty age window)
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from mchcs.config import (
    AppConfig,
    EvaluatorConfig,
    LoggingConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensure get_config cache is cleared before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("PCR_MIN_AGE_WEEKS", raising=False)
    monkeypatch.delenv("PCR_MAX_AGE_MONTHS", raising=False)
    monkeypatch.delenv("MCHCS_PROGRAM", raising=False)

    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.evaluator.min_age_weeks == 6
    assert config.evaluator.max_age_months == 9
    assert config.evaluator.program_name == "MCHCS"


def test_production_uses_json_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    monkeypatch.setenv("LOG_LEVEL", "unknown")
    config = load_config_from_env()
    assert config.logging.level == "INFO"

    # Known level should pass through
    monkeypatch.setenv("LOG_LEVEL", "error")
    config = load_config_from_env()
    assert config.logging.level == "ERROR"


def test_rule_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCHCS_PROGRAM", "MCH_CHILD_SERVICES")
    monkeypatch.setenv("PCR_QUALITATIVE_CONCEPT", "PCR_QUAL")
    monkeypatch.setenv("PCR_MIN_AGE_WEEKS", "4")
    monkeypatch.setenv("PCR_MAX_AGE_MONTHS", "18")
    monkeypatch.setenv("COLLABORATOR_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("MAX_CONCURRENT_LOOKUPS", "3")

    evaluator = load_config_from_env().evaluator

    assert evaluator.program_name == "MCH_CHILD_SERVICES"
    assert evaluator.pcr_qualitative_concept == "PCR_QUAL"
    assert evaluator.min_age_weeks == 4
    assert evaluator.max_age_months == 18
    assert evaluator.collaborator_timeout_seconds == 2.5
    assert evaluator.max_concurrent_lookups == 3


def test_invalid_threshold_from_env_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PCR_MIN_AGE_WEEKS", "0")

    with pytest.raises(ValueError):
        load_config_from_env()


def test_get_config_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_empty_age_window_rejected() -> None:
    with pytest.raises(ValueError, match="age window is empty"):
        EvaluatorConfig(min_age_weeks=20, max_age_months=2)


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(
            environment="production",
            debug=True,
            evaluator=EvaluatorConfig(),
            logging=LoggingConfig(),
        )


def test_configure_logging_accepts_both_formats() -> None:
    configure_logging(LoggingConfig(level="DEBUG", format="console"))
    configure_logging(LoggingConfig(level="INFO", format="json"))
