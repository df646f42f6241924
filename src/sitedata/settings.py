"""Build settings.

Settings are resolved from, in increasing order of precedence: the
defaults, an optional YAML file (`sitedata.yaml`), `SITEDATA_*`
environment variables and explicit overrides (command-line options).

    root: site
    output_dir: public
    max_concurrency: 4
    strict_ports: false
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError
from pydantic_settings import SettingsConfigDict
from yaml import YAMLError, safe_load

from sitedata.errors import SettingsError
from sitedata.models import SettingsModel

DEFAULT_CONFIG_FILE = 'sitedata.yaml'


class BuildSettings(SettingsModel):
    """Settings of a build run."""

    model_config = SettingsConfigDict(
        env_prefix='SITEDATA_',
        frozen=True,
        extra='ignore',
    )

    root: Path = Field(
        default=Path('.'),
        description='Site root; `file` and `glob` requests are relative to it.',
    )

    output_dir: Path = Field(
        default=Path('dist'),
        description='Directory of the page payloads and generated files.',
    )

    cache_file: Path = Field(
        default=Path('.sitedata/cache.json'),
        description='Persisted response cache.',
    )

    max_concurrency: PositiveInt = Field(
        default=8,
        description='Upper bound of requests performed at once.',
    )

    request_timeout: PositiveFloat = Field(
        default=30.0,
        description='Total timeout of one network request, in seconds.',
    )

    max_rounds: PositiveInt = Field(
        default=100,
        description='Upper bound of host round trips.',
    )

    strict_ports: bool = Field(
        default=True,
        description='Whether port plugin loading issues are fatal.',
    )

    log_level: Literal['debug', 'info', 'warning', 'error'] = Field(
        default='info',
        description='Minimal level of emitted log events.',
    )

    log_json: bool = Field(
        default=False,
        description='Whether log events are rendered as JSON lines.',
    )

    def resolve(self, path: Path) -> Path:
        """Resolve a path relative to the site root."""
        return path if path.is_absolute() else self.root / path

    @property
    def output_path(self) -> Path:
        """Output directory resolved against the root."""
        return self.resolve(self.output_dir)

    @property
    def cache_path(self) -> Path:
        """Cache file resolved against the root."""
        return self.resolve(self.cache_file)

    @classmethod
    def load(cls, **overrides: Any) -> 'BuildSettings':  # noqa: ANN401
        """Build settings from the environment and overrides.

        Raises:
            SettingsError: If the settings are invalid.
        """
        try:
            return cls(**overrides)
        except ValidationError as base:
            raise SettingsError('Invalid build settings') from base

    @classmethod
    def from_file(cls, path: Path | str, **overrides: Any) -> 'BuildSettings':  # noqa: ANN401
        """Build settings from a YAML file, the environment and overrides.

        The environment takes precedence over the file; overrides take
        precedence over both.

        Raises:
            SettingsError: If the file can not be read or the settings
                are invalid.
        """
        path = Path(path)

        try:
            content = safe_load(path.read_text(encoding='utf-8')) or {}
        except (OSError, YAMLError) as base:
            raise SettingsError(f'Can not read settings file {path}') from base

        if not isinstance(content, dict):
            raise SettingsError(f'Settings file {path} must contain a mapping')

        environment = cls.load()
        values = {
            **content,
            **{name: getattr(environment, name) for name in environment.model_fields_set},
            **overrides,
        }

        return cls.load(**values)
