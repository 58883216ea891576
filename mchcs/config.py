"""
Configuration management with environment variable support and validation.

Design principles:
- Dictionary names and age thresholds are data, not code
- Validation at startup (fail fast)
- Type safety with Pydantic
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class EvaluatorConfig(BaseModel):
    """Dictionary names and thresholds for the PCR-test-due rule."""

    program_name: str = Field(default="MCHCS", min_length=1, description="Target program")
    hiv_status_concept: str = Field(
        default="CHILDS_CURRENT_HIV_STATUS", min_length=1, description="Child's HIV status question"
    )
    hiv_exposed_concept: str = Field(
        default="EXPOSURE_TO_HIV", min_length=1, description="Coded answer meaning HIV-exposed"
    )
    pcr_quantitative_concept: str = Field(
        default="HIV_DNA_POLYMERASE_CHAIN_REACTION",
        min_length=1,
        description="PCR test result, quantitative reading",
    )
    pcr_qualitative_concept: str = Field(
        default="HIV_DNA_POLYMERASE_CHAIN_REACTION_QUALITATIVE",
        min_length=1,
        description="PCR test result, qualitative reading",
    )

    # Age window (inclusive on both ends, completed units)
    min_age_weeks: int = Field(default=6, gt=0, description="Youngest age at which the test is due")
    max_age_months: int = Field(default=9, gt=0, description="Oldest age at which the test is due")

    # Performance tuning
    collaborator_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout for each collaborator call"
    )
    max_concurrent_lookups: int = Field(
        default=10, gt=0, description="Maximum number of concurrent per-patient lookups"
    )

    @model_validator(mode="after")
    def age_window_not_empty(self) -> "EvaluatorConfig":
        """A window of N months must be able to contain the minimum age in weeks."""
        if self.max_age_months * 31 < self.min_age_weeks * 7:
            raise ValueError("age window is empty: max_age_months is below min_age_weeks")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    evaluator: EvaluatorConfig
    logging: LoggingConfig

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    defaults = EvaluatorConfig()
    evaluator_config = EvaluatorConfig(
        program_name=os.getenv("MCHCS_PROGRAM", defaults.program_name),
        hiv_status_concept=os.getenv("HIV_STATUS_CONCEPT", defaults.hiv_status_concept),
        hiv_exposed_concept=os.getenv("HIV_EXPOSED_CONCEPT", defaults.hiv_exposed_concept),
        pcr_quantitative_concept=os.getenv(
            "PCR_QUANTITATIVE_CONCEPT", defaults.pcr_quantitative_concept
        ),
        pcr_qualitative_concept=os.getenv(
            "PCR_QUALITATIVE_CONCEPT", defaults.pcr_qualitative_concept
        ),
        min_age_weeks=int(os.getenv("PCR_MIN_AGE_WEEKS", str(defaults.min_age_weeks))),
        max_age_months=int(os.getenv("PCR_MAX_AGE_MONTHS", str(defaults.max_age_months))),
        collaborator_timeout_seconds=float(
            os.getenv("COLLABORATOR_TIMEOUT_SECONDS", str(defaults.collaborator_timeout_seconds))
        ),
        max_concurrent_lookups=int(
            os.getenv("MAX_CONCURRENT_LOOKUPS", str(defaults.max_concurrent_lookups))
        ),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        evaluator=evaluator_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig) -> None:
    """Apply the configured level and renderer to structlog and stdlib logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, config.level))
    logging.getLogger().setLevel(getattr(logging, config.level))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
