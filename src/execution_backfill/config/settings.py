"""Configuration settings using Pydantic for validation."""

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
import re


class ExchangeConfig(BaseModel):
    """Upstream executions API configuration."""
    api_base_url: str = Field(default="https://api.bitflyer.com", description="Executions API base URL")
    product_code: str = Field(default="BTC_JPY", description="Product code to backfill")
    start_id: int = Field(default=636150891, description="Execution ID the backfill walks down from")
    page_size: int = Field(default=500, description="Executions requested per page")
    request_timeout_seconds: float = Field(default=30.0, description="Deadline per page, limiter wait included")
    user_agent: str = Field(default="curl/7.63.0", description="User-Agent header sent upstream")

    @field_validator('start_id', 'page_size')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator('api_base_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')


class ProxyConfig(BaseModel):
    """Proxy provisioning configuration."""
    enabled: bool = Field(default=True, description="Route requests through provisioned proxies")
    provider_url: str = Field(default="https://proxy6.net/api", description="Proxy vendor API base URL")
    api_key: Optional[str] = Field(default=None, description="Proxy vendor API key")
    max_endpoints: int = Field(default=0, description="Cap on proxies used, 0 for no cap")
    request_timeout_seconds: float = Field(default=30.0, description="Provisioning request timeout")


class RateLimitConfig(BaseModel):
    """Per-proxy rate limiting."""
    requests_per_minute: int = Field(default=500, description="Sustained requests per minute per proxy")
    burst: int = Field(default=5, description="Token bucket capacity")

    @field_validator('requests_per_minute', 'burst')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


class StorageConfig(BaseModel):
    """Artifact storage configuration."""
    results_dir: str = Field(default="results", description="Root directory for page artifacts")
    error_log_suffix: str = Field(default="_result_err.json", description="Error log name suffix after the product code")
    error_log_dir: str = Field(default=".", description="Directory holding the error log")
    save_concurrency: int = Field(default=100, description="Maximum concurrent page saves")

    @field_validator('save_concurrency')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


class PipelineConfig(BaseModel):
    """Pipeline wiring configuration."""
    queue_size: int = Field(default=5, description="Capacity of each stage handoff queue")
    show_progress: bool = Field(default=True, description="Display a progress bar")

    @field_validator('queue_size')
    @classmethod
    def validate_queue_size(cls, v):
        if v < 1:
            raise ValueError("queue_size must be at least 1")
        return v


class RetryConfig(BaseModel):
    """Retry configuration for proxy provisioning."""
    max_attempts: int = Field(default=3, description="Maximum retry attempts")
    initial_backoff_seconds: float = Field(default=1.0, description="Initial backoff delay")
    max_backoff_seconds: float = Field(default=30.0, description="Maximum backoff delay")
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier")
    jitter: bool = Field(default=True, description="Add jitter to backoff")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stderr", description="Log output destination")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError("Level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Format must be 'json' or 'text'")
        return v.lower()


class BackfillSettings(BaseSettings):
    """Main backfill service settings."""

    model_config = SettingsConfigDict(
        env_prefix="BACKFILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="execution-backfill", description="Service name")

    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)
            else:
                var_name = var_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(f"Required environment variable '{var_name}' is not set")
                return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> BackfillSettings:
    """
    Load settings from config file and environment variables.

    The config file supports environment variable substitution using ${VAR_NAME} syntax.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        BackfillSettings: Validated configuration object

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """
    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)
        return BackfillSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return BackfillSettings()
