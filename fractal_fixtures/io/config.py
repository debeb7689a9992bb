"""
Configuration management for generation and upload runs.

Generation settings come from dataclass defaults, optionally overridden by a
YAML or JSON file and then by command-line options. Storage credentials and
the bucket location come only from environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from ..acceleration import is_numba_available
from ..core.complexity import AcceptanceBand
from ..core.sampling import ParameterRanges
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

BACKENDS = ('numpy', 'numba')


@dataclass
class GenerationConfig:
    """Configuration for a fixture generation run."""

    # Sampling
    ranges: ParameterRanges = field(default_factory=ParameterRanges)

    # Acceptance
    min_ratio: float = 0.3
    max_ratio: float = 0.7
    max_attempts: int = 50

    # Size window for inflated artifacts (bytes)
    target_min_bytes: int = 2_000_000
    target_max_bytes: int = 4_000_000

    # Encoding
    image_format: str = 'png'
    png_compress_level: int = 6
    jpeg_quality: int = 95
    palette: str = 'mono'

    # Performance
    backend: str = 'numpy'
    job_workers: Optional[int] = None
    render_threads: Optional[int] = None
    tile_size: int = 256

    # Output
    output_dir: str = 'data/images'
    seed: Optional[int] = None

    @property
    def band(self) -> AcceptanceBand:
        return AcceptanceBand(self.min_ratio, self.max_ratio)

    def codec_options(self) -> Dict[str, Any]:
        if self.image_format.lower() == 'png':
            return {'compress_level': self.png_compress_level}
        return {'quality': self.jpeg_quality}

    def validate(self) -> None:
        """Validate configuration parameters."""
        from ..rendering.coloring import ColoringEngine
        from ..rendering.image_output import get_codec

        self.ranges.validate()
        self.band.validate()

        if not isinstance(self.max_attempts, int) or isinstance(self.max_attempts, bool) \
                or self.max_attempts <= 0:
            raise ConfigurationError("max_attempts must be a positive integer")

        if not 0 < self.target_min_bytes <= self.target_max_bytes:
            raise ConfigurationError(
                f"target size window must satisfy 0 < min <= max, "
                f"got [{self.target_min_bytes}, {self.target_max_bytes}]"
            )

        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown backend '{self.backend}'. Available: {', '.join(BACKENDS)}")
        if self.backend == 'numba' and not is_numba_available():
            raise ConfigurationError("numba backend requested but numba is not installed "
                                     "(pip install 'fractal-fixtures[jit]')")

        if self.job_workers is not None and self.job_workers < 1:
            raise ConfigurationError("job_workers must be >= 1")
        if self.render_threads is not None and self.render_threads < 1:
            raise ConfigurationError("render_threads must be >= 1")
        if self.tile_size < 16:
            raise ConfigurationError("tile_size must be >= 16")

        get_codec(self.image_format, **self.codec_options())

        if self.palette not in ColoringEngine().list_palettes():
            raise ConfigurationError(f"Unknown palette '{self.palette}'")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['ranges'] = self.ranges.to_dict()
        return data


@dataclass
class StorageConfig:
    """Object storage location, credentials and upload tuning."""

    access_key: str
    secret_key: str
    bucket: str
    region: str
    prefix: str = ''

    upload_concurrency: int = 8
    upload_retries: int = 3
    retry_backoff: float = 0.5

    def validate(self) -> None:
        for name in ('access_key', 'secret_key', 'bucket', 'region'):
            if not getattr(self, name):
                raise ConfigurationError(f"storage {name} is not configured")
        if self.upload_concurrency < 1:
            raise ConfigurationError("upload_concurrency must be >= 1")
        if self.upload_retries < 1:
            raise ConfigurationError("upload_retries must be >= 1")
        if self.retry_backoff < 0:
            raise ConfigurationError("retry_backoff must be >= 0")

    @property
    def key_prefix(self) -> str:
        """Prefix normalized to end with exactly one slash (or empty)."""
        prefix = self.prefix.strip('/')
        return f"{prefix}/" if prefix else ''

    def __repr__(self) -> str:
        return (f"StorageConfig(bucket={self.bucket!r}, region={self.region!r}, "
                f"prefix={self.prefix!r}, access_key='***')")


class EnvironmentConfig:
    """Reads storage settings from the process environment."""

    # First variable found wins
    VARIABLES = {
        'access_key': ('SPACES_KEY', 'AWS_ACCESS_KEY_ID'),
        'secret_key': ('SPACES_SECRET', 'AWS_SECRET_ACCESS_KEY'),
        'bucket': ('SPACES_BUCKET',),
        'region': ('SPACES_REGION',),
        'prefix': ('SPACES_PREFIX',),
    }

    REQUIRED = ('access_key', 'secret_key', 'bucket', 'region')

    @classmethod
    def storage_from_env(cls, environ: Optional[Mapping[str, str]] = None,
                         overrides: Optional[Dict[str, Any]] = None) -> StorageConfig:
        """
        Build a StorageConfig from environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)
            overrides: Non-secret tuning values, e.g. from a config file

        Raises:
            ConfigurationError: if a required variable is missing
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        for name, variables in cls.VARIABLES.items():
            for variable in variables:
                if environ.get(variable):
                    values[name] = environ[variable]
                    break

        missing = [cls.VARIABLES[name][0] for name in cls.REQUIRED if name not in values]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        for key, value in (overrides or {}).items():
            if key in cls.VARIABLES and key != 'prefix':
                raise ConfigurationError(f"storage.{key} must be supplied through the environment")
            values[key] = value

        try:
            config = StorageConfig(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid storage configuration: {e}") from e
        config.validate()
        return config


class ConfigManager:
    """Loads configuration files and builds config objects."""

    def load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load a YAML or JSON configuration file.

        Args:
            config_path: File path; None returns an empty configuration

        Returns:
            Configuration dictionary
        """
        if config_path is None:
            return {}

        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                if config_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Could not parse {config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {config_path} must be a mapping")

        logger.info(f"Loaded configuration from {config_path}")
        return data

    def create_generation_config(self, config_dict: Dict[str, Any],
                                 overrides: Optional[Dict[str, Any]] = None) -> GenerationConfig:
        """
        Build a validated GenerationConfig from the ``generation`` section.

        Args:
            config_dict: Loaded configuration dictionary
            overrides: Values that take precedence (None values are ignored)
        """
        section = dict(config_dict.get('generation') or {})
        section.update({k: v for k, v in (overrides or {}).items() if v is not None})

        known = {f.name for f in fields(GenerationConfig)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError(f"Unknown generation settings: {', '.join(unknown)}")

        ranges_data = section.pop('ranges', None) or {}
        if isinstance(ranges_data, ParameterRanges):
            ranges = ranges_data
        else:
            ranges = self._create_ranges(ranges_data)

        config = GenerationConfig(ranges=ranges, **section)
        config.validate()
        return config

    def create_storage_config(self, config_dict: Dict[str, Any],
                              environ: Optional[Mapping[str, str]] = None) -> StorageConfig:
        """Build a StorageConfig from the environment plus the ``storage`` section."""
        section = dict(config_dict.get('storage') or {})
        known = {f.name for f in fields(StorageConfig)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError(f"Unknown storage settings: {', '.join(unknown)}")
        return EnvironmentConfig.storage_from_env(environ, section)

    def _create_ranges(self, data: Dict[str, Any]) -> ParameterRanges:
        known = {f.name for f in fields(ParameterRanges)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown sampling ranges: {', '.join(unknown)}")
        return ParameterRanges(**{k: self._pair(k, v) for k, v in data.items()})

    @staticmethod
    def _pair(name: str, value: Any) -> Tuple:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ConfigurationError(f"ranges.{name} must be a [low, high] pair, got {value!r}")
        return tuple(value)


def load_config_from_args(config_file: Optional[str],
                          overrides: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], GenerationConfig]:
    """Load a config file and build the generation config with CLI overrides applied."""
    manager = ConfigManager()
    config_dict = manager.load_config(config_file)
    return config_dict, manager.create_generation_config(config_dict, overrides)
