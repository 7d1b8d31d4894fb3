"""Configuration for imagemanager.

Settings are loaded from environment variables at construction time and
validated eagerly, so misconfiguration fails before any download starts.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import platformdirs

from imagemanager.core.exceptions import ConfigurationError


__all__ = ["Settings", "create_settings_from_env", "default_cache_dir"]

ENV_CACHE_DIR = "IMAGEMANAGER_CACHE_DIR"
ENV_MAX_AGE = "IMAGEMANAGER_MAX_AGE"
ENV_SOURCE = "IMAGEMANAGER_SOURCE"
ENV_STAGING_DIR = "IMAGEMANAGER_STAGING_DIR"
ENV_HTTP_TIMEOUT = "IMAGEMANAGER_HTTP_TIMEOUT"

DEFAULT_MAX_AGE = timedelta(days=7)
DEFAULT_HTTP_TIMEOUT = 30.0


def default_cache_dir() -> Path:
    """Get the platform-appropriate image cache directory.

    Example:
        >>> default_cache_dir()  # doctest: +SKIP
        PosixPath('/home/user/.cache/imagemanager/images')
    """
    return Path(platformdirs.user_cache_dir("imagemanager")) / "images"


@dataclass(frozen=True)
class Settings:
    """Configuration settings for imagemanager.

    Attributes:
        cache_dir: Directory holding cached images.
        max_age: Cached images older than this are re-fetched. None means
            cached images never go stale.
        source_template: Location of an image with an '{identifier}'
            placeholder, e.g. 'https://images.example.com/{identifier}.zip'
            or 's3://bucket/images/{identifier}.img'.
        staging_dir: Parent directory for staged images. None uses the
            system temporary directory.
        http_timeout_s: HTTP request timeout in seconds.
    """

    cache_dir: Path
    max_age: timedelta | None = DEFAULT_MAX_AGE
    source_template: str | None = None
    staging_dir: Path | None = None
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT

    def __post_init__(self) -> None:
        """Validate settings on construction."""
        if self.max_age is not None and self.max_age <= timedelta(0):
            raise ConfigurationError(f"max_age must be positive, got {self.max_age}")

        if self.http_timeout_s <= 0:
            raise ConfigurationError(
                f"http_timeout_s must be positive, got {self.http_timeout_s}"
            )

        if self.source_template is not None and "{identifier}" not in self.source_template:
            raise ConfigurationError(
                "source_template must contain '{identifier}', "
                f"got {self.source_template!r}"
            )


def _parse_max_age(value: str) -> timedelta | None:
    """Parse a max age in seconds; empty or 'never' disables staleness."""
    value = value.strip()
    if value == "" or value.lower() == "never":
        return None
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_MAX_AGE} must be a number of seconds or 'never', got {value!r}"
        ) from None
    return timedelta(seconds=seconds)


def create_settings_from_env(env: Mapping[str, str] | None = None) -> Settings:
    """Create Settings from environment variables.

    Args:
        env: Environment mapping. Defaults to os.environ.

    Returns:
        Validated Settings.

    Raises:
        ConfigurationError: If a variable has an invalid value.
    """
    if env is None:
        env = os.environ

    cache_dir = env.get(ENV_CACHE_DIR)
    staging_dir = env.get(ENV_STAGING_DIR)

    timeout_raw = env.get(ENV_HTTP_TIMEOUT)
    try:
        http_timeout_s = float(timeout_raw) if timeout_raw else DEFAULT_HTTP_TIMEOUT
    except ValueError:
        raise ConfigurationError(
            f"{ENV_HTTP_TIMEOUT} must be a number, got {timeout_raw!r}"
        ) from None

    max_age_raw = env.get(ENV_MAX_AGE)
    max_age = DEFAULT_MAX_AGE if max_age_raw is None else _parse_max_age(max_age_raw)

    return Settings(
        cache_dir=Path(cache_dir).expanduser() if cache_dir else default_cache_dir(),
        max_age=max_age,
        source_template=env.get(ENV_SOURCE) or None,
        staging_dir=Path(staging_dir).expanduser() if staging_dir else None,
        http_timeout_s=http_timeout_s,
    )
