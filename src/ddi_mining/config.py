"""
Configuration for DDI Mining

Loads configuration from environment variables (and a .env file when present).
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from ddi_mining.exceptions import ConfigError
from ddi_mining.models import DEFAULT_SOURCE_PRECEDENCE, EvidenceSource

logger = logging.getLogger(__name__)


@dataclass
class APIConfig:
    """API client configuration."""
    openfda_api_key: Optional[str] = None
    openfda_rate_limit: int = 240  # requests per minute with API key

    ncbi_api_key: Optional[str] = None
    ncbi_email: Optional[str] = None
    pubmed_rate_limit: int = 180  # 3/s without key, 10/s with key

    clinicaltrials_rate_limit: int = 50

    request_timeout: int = 30
    max_retries: int = 3


@dataclass
class MiningConfig:
    """Mining behaviour; every field may be changed at runtime via update_config."""
    enable_clinical_trials: bool = True
    enable_regulatory: bool = True
    enable_publications: bool = True

    max_concurrent_drugs: int = 3
    max_batch_size: int = 50

    max_clinical_trials_per_drug: int = 50
    max_regulatory_labels_per_drug: int = 20
    max_publications_per_drug: int = 100
    publication_year_range: int = 10
    include_completed_trials: bool = True

    cache_ttl_seconds: int = 24 * 3600
    extractor_timeout_seconds: float = 60.0
    global_rate_limit_per_minute: Optional[int] = None
    session_call_budget: Optional[int] = None
    export_max_bytes: int = 10 * 1024 * 1024

    source_precedence: Tuple[EvidenceSource, ...] = DEFAULT_SOURCE_PRECEDENCE

    @property
    def enabled_sources(self) -> List[EvidenceSource]:
        flags = {
            EvidenceSource.CLINICAL_TRIAL: self.enable_clinical_trials,
            EvidenceSource.REGULATORY: self.enable_regulatory,
            EvidenceSource.PUBLICATION: self.enable_publications,
        }
        return [source for source in EvidenceSource if flags[source]]

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> "MiningConfig":
        """
        Copy with selected fields replaced.

        Raises:
            ConfigError: On unknown keys
        """
        if not overrides:
            return self

        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration option(s): {', '.join(unknown)}")

        values = dict(overrides)
        if "source_precedence" in values:
            try:
                values["source_precedence"] = tuple(EvidenceSource(s) for s in values["source_precedence"])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid source_precedence: {e}") from e

        return dataclasses.replace(self, **values)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["source_precedence"] = [s.value for s in self.source_precedence]
        return data


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_dir: str = "logs/ddi_mining"
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration class."""
    api: APIConfig = field(default_factory=APIConfig)
    mining: MiningConfig = field(default_factory=MiningConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    vocabulary_csv: Optional[str] = None


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got: {value!r}") from e


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Environment variables:
        OPEN_FDA_API_KEY: openFDA API key (optional but recommended)
        NCBI_API_KEY: NCBI E-utilities API key (optional)
        NCBI_EMAIL: Contact email sent to NCBI (optional)
        DDI_MAX_CONCURRENT_DRUGS: Worker pool size
        DDI_MAX_BATCH_SIZE: Max drugs per multi-drug request
        DDI_CACHE_TTL_SECONDS: Cache TTL
        DDI_EXTRACTOR_TIMEOUT: Per-call extractor timeout in seconds
        DDI_GLOBAL_RATE_LIMIT: Session-wide calls per minute across sources
        DDI_SESSION_CALL_BUDGET: Total outbound calls allowed for the session
        DDI_DRUG_VOCABULARY_CSV: CSV overriding the curated drug list
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    load_dotenv()
    config = Config()

    config.api.openfda_api_key = os.getenv("OPEN_FDA_API_KEY")
    if not config.api.openfda_api_key:
        logger.warning("OPEN_FDA_API_KEY not set - using lower rate limits (40/min)")
        config.api.openfda_rate_limit = 40

    config.api.ncbi_api_key = os.getenv("NCBI_API_KEY")
    config.api.ncbi_email = os.getenv("NCBI_EMAIL")
    if config.api.ncbi_api_key:
        config.api.pubmed_rate_limit = 600

    env_ints = {
        "DDI_MAX_CONCURRENT_DRUGS": "max_concurrent_drugs",
        "DDI_MAX_BATCH_SIZE": "max_batch_size",
        "DDI_CACHE_TTL_SECONDS": "cache_ttl_seconds",
        "DDI_GLOBAL_RATE_LIMIT": "global_rate_limit_per_minute",
        "DDI_SESSION_CALL_BUDGET": "session_call_budget",
    }
    for env_name, attr in env_ints.items():
        value = _env_int(env_name)
        if value is not None:
            setattr(config.mining, attr, value)

    timeout = os.getenv("DDI_EXTRACTOR_TIMEOUT")
    if timeout:
        try:
            config.mining.extractor_timeout_seconds = float(timeout)
        except ValueError as e:
            raise ConfigError(f"DDI_EXTRACTOR_TIMEOUT must be a number, got: {timeout!r}") from e

    config.vocabulary_csv = os.getenv("DDI_DRUG_VOCABULARY_CSV")
    config.logging.level = os.getenv("LOG_LEVEL", "INFO")

    logger.info("Configuration loaded successfully")
    return config


def check_mining_config(mining: MiningConfig) -> Tuple[List[str], List[str]]:
    """Range checks for the runtime-mutable mining settings."""
    errors = []
    warnings = []

    ranges = {
        "max_concurrent_drugs": (1, 10),
        "max_batch_size": (1, 200),
        "max_clinical_trials_per_drug": (1, 100),
        "max_regulatory_labels_per_drug": (1, 100),
        "max_publications_per_drug": (1, 500),
        "publication_year_range": (1, 50),
        "cache_ttl_seconds": (1, 7 * 24 * 3600),
        "extractor_timeout_seconds": (1, 600),
    }
    for name, (low, high) in ranges.items():
        value = getattr(mining, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{name} must be a number, got: {value!r}")
        elif name != "extractor_timeout_seconds" and not isinstance(value, int):
            errors.append(f"{name} must be an integer, got: {value!r}")
        elif not low <= value <= high:
            errors.append(f"{name} must be between {low} and {high}, got: {value}")

    for name in ("enable_clinical_trials", "enable_regulatory", "enable_publications", "include_completed_trials"):
        if not isinstance(getattr(mining, name), bool):
            errors.append(f"{name} must be a boolean, got: {getattr(mining, name)!r}")

    if mining.global_rate_limit_per_minute is not None:
        value = mining.global_rate_limit_per_minute
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            errors.append(f"global_rate_limit_per_minute must be >= 1 or unset, got: {value!r}")

    if mining.session_call_budget is not None:
        value = mining.session_call_budget
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            errors.append(f"session_call_budget must be >= 1 or unset, got: {value!r}")

    if not isinstance(mining.export_max_bytes, int) or mining.export_max_bytes < 1024:
        errors.append(f"export_max_bytes must be >= 1024, got: {mining.export_max_bytes!r}")

    if sorted(s.value for s in mining.source_precedence) != sorted(s.value for s in EvidenceSource):
        errors.append("source_precedence must list each source exactly once")

    if not mining.enabled_sources:
        errors.append("At least one source must be enabled")
    elif len(mining.enabled_sources) < len(EvidenceSource):
        disabled = [s.value for s in EvidenceSource if s not in mining.enabled_sources]
        warnings.append(f"Sources disabled: {', '.join(disabled)}")

    return errors, warnings


def validate_config(config: Config, strict: bool = True) -> Tuple[List[str], List[str]]:
    """
    Validate configuration and return errors and warnings.

    Args:
        config: Configuration to validate
        strict: If True, raise ConfigError for critical issues

    Returns:
        Tuple of (errors, warnings) lists

    Raises:
        ConfigError: If strict=True and errors found
    """
    errors, warnings = check_mining_config(config.mining)

    if not config.api.openfda_api_key:
        warnings.append("OPEN_FDA_API_KEY not set - using lower rate limits (40/min instead of 240/min)")

    if not config.api.ncbi_api_key:
        warnings.append("NCBI_API_KEY not set - PubMed limited to 3 requests/second")

    if config.api.max_retries < 0:
        errors.append(f"max_retries must be >= 0, got: {config.api.max_retries}")

    if config.api.request_timeout < 1:
        errors.append(f"request_timeout must be >= 1, got: {config.api.request_timeout}")

    if config.vocabulary_csv and not os.path.exists(config.vocabulary_csv):
        errors.append(f"DDI_DRUG_VOCABULARY_CSV not found: {config.vocabulary_csv}")

    if errors:
        logger.error(f"Configuration validation failed with {len(errors)} error(s):")
        for error in errors:
            logger.error(f"  - {error}")

    if warnings:
        logger.warning(f"Configuration has {len(warnings)} warning(s):")
        for warning in warnings:
            logger.warning(f"  - {warning}")

    if strict and errors:
        error_msg = "\n".join(f"  - {e}" for e in errors)
        raise ConfigError(f"Configuration validation failed:\n{error_msg}")

    return errors, warnings


_config: Optional[Config] = None


def get_config(validate: bool = True, strict: bool = False) -> Config:
    """
    Get or create global config instance.

    Raises:
        ConfigError: If strict=True and validation fails
    """
    global _config
    if _config is None:
        _config = load_config()
        if validate:
            validate_config(_config, strict=strict)
    return _config


def reload_config(validate: bool = True, strict: bool = False) -> Config:
    """Force reload configuration."""
    global _config
    _config = load_config()
    if validate:
        validate_config(_config, strict=strict)
    return _config
