"""
Configuration management for the web crawler.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import yaml

T = TypeVar('T')


class ConfigurationError(ValueError):
    """Invalid or missing configuration."""
    pass


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    start_pages: List[str]
    ignored_urls: List[str] = field(default_factory=list)
    ignored_words: List[str] = field(default_factory=list)
    parallelism: int = 1
    max_depth: int = 10
    timeout_seconds: float = 10.0
    popular_word_count: int = 10
    user_agent: str = "webcrawler/1.0"
    request_timeout: float = 30.0
    max_concurrent_requests: int = 10


@dataclass
class OutputConfig:
    """Where reports go; empty paths mean standard output (or disabled for metrics)."""
    result_path: str = ""
    profile_output_path: str = ""
    metrics_path: str = ""


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Union[str, Path] = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from a YAML (or JSON) file."""
        if not self.config_path.is_file():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config_data = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {self.config_path}: {e}") from e

        self._config = parse_config(config_data)
        logging.getLogger(__name__).info(f"Configuration loaded from {self.config_path}")
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


def _section(cls: Type[T], data: Any, name: str, required: bool = False) -> T:
    if data is None:
        if required:
            raise ConfigurationError(f"Missing '{name}' section")
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{name}' section must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(unknown)}")

    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' section: {e}") from e


def parse_config(config_data: Any) -> Config:
    """Build and validate a Config from already-parsed data."""
    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    unknown = sorted(set(config_data) - {'crawler', 'output', 'logging'})
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {', '.join(unknown)}")

    config = Config(
        crawler=_section(CrawlerConfig, config_data.get('crawler'), 'crawler', required=True),
        output=_section(OutputConfig, config_data.get('output'), 'output'),
        logging=_section(LoggingConfig, config_data.get('logging'), 'logging'),
    )
    validate_config(config)
    return config


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if not isinstance(crawler.start_pages, list) or not crawler.start_pages:
        raise ConfigurationError("At least one start page must be provided")
    if not all(isinstance(url, str) and url for url in crawler.start_pages):
        raise ConfigurationError("Start pages must be non-empty strings")

    for name in ('parallelism', 'max_depth', 'popular_word_count', 'max_concurrent_requests'):
        if not _is_int(getattr(crawler, name)):
            raise ConfigurationError(f"{name} must be an integer")

    if crawler.parallelism < 1:
        raise ConfigurationError("parallelism must be at least 1")
    if crawler.max_depth < 0:
        raise ConfigurationError("max_depth must be non-negative")
    if crawler.popular_word_count < 0:
        raise ConfigurationError("popular_word_count must be non-negative")
    if crawler.max_concurrent_requests < 1:
        raise ConfigurationError("max_concurrent_requests must be at least 1")

    for name in ('timeout_seconds', 'request_timeout'):
        value = getattr(crawler, name)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ConfigurationError(f"{name} must be a non-negative number")

    for name in ('ignored_urls', 'ignored_words'):
        patterns = getattr(crawler, name)
        if not isinstance(patterns, list):
            raise ConfigurationError(f"{name} must be a list of patterns")
        for pattern in patterns:
            try:
                re.compile(pattern)
            except (re.error, TypeError) as e:
                raise ConfigurationError(f"Invalid pattern in {name}: {pattern!r} ({e})") from e

    for name in ('result_path', 'profile_output_path', 'metrics_path'):
        if not isinstance(getattr(config.output, name), str):
            raise ConfigurationError(f"output.{name} must be a string")

    if not isinstance(logging.getLevelName(str(config.logging.level).upper()), int):
        raise ConfigurationError(f"Unknown log level: {config.logging.level}")


def load_config(config_path: Union[str, Path] = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
