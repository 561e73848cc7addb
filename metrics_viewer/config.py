"""Configuration models using Pydantic for validation."""
from typing import Any, Dict, Literal, Optional
import os
import re

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from metrics_viewer.errors import ConfigurationError
from metrics_viewer.filters import NameFilter
from metrics_viewer.series import IgnoreSet

MOCK_DATA_ENV = "MOCK_METRICS_DATA"
DEFAULT_IGNORE_LABELS = "start,end,status"


class SourceConfig(BaseModel):
    """Where metrics are read from. Exactly one of file, url or remote is expected."""
    file: Optional[str] = None
    url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    remote: bool = False
    remote_url: Optional[str] = None
    token: Optional[str] = None
    mock: bool = False
    mock_seed: int = 42

    def selected(self) -> int:
        """Number of production sources selected."""
        return sum([bool(self.file), bool(self.url), bool(self.remote)])

    def __str__(self) -> str:
        if self.file:
            return f"file: '{self.file}'"
        if self.url:
            return f"url: '{self.url}'"
        if self.remote:
            return f"remote: '{self.remote_url}'"
        if self.mock:
            return "mock data"
        return "no source"


class ViewerConfig(BaseModel):
    """Resolved configuration handed to the polling pipeline."""
    source: SourceConfig = Field(default_factory=SourceConfig)
    interval_s: int = 5
    filter: Optional[str] = None
    aggregate_ignore_labels: str = DEFAULT_IGNORE_LABELS

    @field_validator("interval_s")
    @classmethod
    def validate_interval(cls, v):
        """Interval is a whole number of seconds, at least one."""
        if v <= 0:
            raise ValueError(f"interval value must be positive; got: {v}")
        return v

    @field_validator("filter")
    @classmethod
    def validate_filter(cls, v):
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"invalid filter expression; cause: {e}")
        return v

    @model_validator(mode="after")
    def validate_source(self):
        """Ensure exactly one source is selected and that it is usable."""
        source = self.source
        count = source.selected()

        if count == 0:
            if os.getenv(MOCK_DATA_ENV):
                source.mock = True
            else:
                raise ValueError("one source is required: file | url | remote")
        elif count > 1:
            raise ValueError("only one source is allowed: file | url | remote")
        else:
            source.mock = False

        if source.file:
            try:
                with open(source.file, "rb"):
                    pass
            except OSError as e:
                raise ValueError(f"could not open file {source.file}: {e}")

        if source.remote and not source.remote_url:
            raise ValueError("remote source requires remote_url")

        return self

    def ignore_set(self) -> IgnoreSet:
        return IgnoreSet.parse(self.aggregate_ignore_labels)

    def name_filter(self) -> NameFilter:
        return NameFilter(self.filter)

    def __str__(self) -> str:
        return (
            f"{self.source}, interval: {self.interval_s}s, "
            f"filter: {self.filter or '.*'}, ignore labels: {self.ignore_set()}"
        )


class LoggingConfig(BaseModel):
    """Logging settings."""
    level: str = "INFO"
    format: Literal["json", "text"] = "text"


class ApiConfig(BaseModel):
    """View API settings."""
    host: str = "0.0.0.0"
    port: int = 8081
    events_buffer: int = 200


class Config(BaseModel):
    """Root configuration model."""
    viewer: ViewerConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def resolve_config(raw_config: Dict[str, Any]) -> Config:
    """Validate a raw configuration mapping."""
    try:
        return Config(**raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {_first_error(e)}") from e


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file."""
    return resolve_config(read_config_file(config_path))


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Read a YAML configuration file and apply environment overrides."""
    import yaml

    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    return apply_env_overrides(raw_config)


def apply_env_overrides(raw_config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply METRICS_VIEWER_* and LOG_LEVEL environment overrides."""
    if env_interval := os.getenv('METRICS_VIEWER_INTERVAL'):
        raw_config.setdefault('viewer', {})['interval_s'] = env_interval

    if env_filter := os.getenv('METRICS_VIEWER_FILTER'):
        raw_config.setdefault('viewer', {})['filter'] = env_filter

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('logging', {})['level'] = env_log_level

    return raw_config


def config_from_args(args, base: Optional[Dict[str, Any]] = None) -> Config:
    """
    Build a configuration from parsed command line flags.

    Args:
        args: argparse namespace from the CLI
        base: Raw configuration from a file; flags that were given override it

    Returns:
        Validated configuration
    """
    raw = base if base is not None else {}
    viewer = raw.setdefault('viewer', {})
    source = viewer.setdefault('source', {})

    flag_sources = {
        'file': getattr(args, 'file', None),
        'url': getattr(args, 'url', None),
        'remote': getattr(args, 'remote', False),
    }
    if any(flag_sources.values()):
        # Source flags replace any source selected in the file
        for key in ('file', 'url', 'remote'):
            source.pop(key, None)
        for key, value in flag_sources.items():
            if value:
                source[key] = value

    for flag, key in (
        ('user', 'user'),
        ('password', 'password'),
        ('remote_url', 'remote_url'),
        ('token', 'token'),
    ):
        value = getattr(args, flag, None)
        if value:
            source[key] = value

    for flag, key in (
        ('interval', 'interval_s'),
        ('filter', 'filter'),
        ('aggregate_ignore_labels', 'aggregate_ignore_labels'),
    ):
        value = getattr(args, flag, None)
        if value is not None:
            viewer[key] = value

    if getattr(args, 'log_level', None):
        raw.setdefault('logging', {})['level'] = args.log_level
    if getattr(args, 'port', None):
        raw.setdefault('api', {})['port'] = args.port

    return resolve_config(raw)


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "")
    return f"{location}: {message}" if location else message
