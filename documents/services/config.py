"""
Core configuration service for the document pipeline.

Reads ``settings.DOCUMENT_PIPELINE``, merges it over the defaults below and
validates the result into an immutable PipelineConfig. All pipeline
components (pool, structured renderer, repository) take their limits from
here unless explicitly overridden by the caller.
"""

from dataclasses import dataclass
from typing import Any, Optional

from django.conf import settings

from .exceptions import ServiceNotConfigured


SETTINGS_KEY = 'DOCUMENT_PIPELINE'

SUPPORTED_DPI = (150, 300, 600)
SUPPORTED_PAGE_SIZES = ('letter', 'a4', 'legal', '4x6', '5x7')

PIPELINE_DEFAULTS = {
    'POOL_MAX_SIZE': 2,
    'POOL_MIN_SIZE': 1,
    'POOL_IDLE_TIMEOUT': 300.0,
    'POOL_ACQUIRE_TIMEOUT': 10.0,
    'POOL_RENDER_TIMEOUT': 30.0,
    'POOL_STARTUP_TIMEOUT': 30.0,
    'POOL_CRASH_ALERT_THRESHOLD': 3,
    'OUTPUT_DPI': 300,
    'DEFAULT_PAGE_SIZE': 'letter',
    'MAX_GROUP_ROWS': 500,
    'SAVE_RETRY_ATTEMPTS': 3,
}


@dataclass(frozen=True)
class PipelineConfig:
    """Validated pipeline configuration."""

    pool_max_size: int
    pool_min_size: int
    pool_idle_timeout: float
    pool_acquire_timeout: float
    pool_render_timeout: float
    pool_startup_timeout: float
    pool_crash_alert_threshold: int
    output_dpi: int
    default_page_size: str
    max_group_rows: int
    save_retry_attempts: int


def _merge_dict(defaults: dict[str, Any], overrides: Any) -> dict[str, Any]:
    """Shallow-merge dict settings with safe fallbacks."""
    merged = dict(defaults)
    if isinstance(overrides, dict):
        merged.update(overrides)
    return merged


def _validate(config: PipelineConfig) -> None:
    if config.pool_max_size < 1:
        raise ServiceNotConfigured("POOL_MAX_SIZE must be at least 1")
    if not 0 <= config.pool_min_size <= config.pool_max_size:
        raise ServiceNotConfigured("POOL_MIN_SIZE must be between 0 and POOL_MAX_SIZE")
    for name in ('pool_idle_timeout', 'pool_acquire_timeout', 'pool_render_timeout', 'pool_startup_timeout'):
        if getattr(config, name) <= 0:
            raise ServiceNotConfigured(f"{name.upper()} must be positive")
    if config.pool_crash_alert_threshold < 1:
        raise ServiceNotConfigured("POOL_CRASH_ALERT_THRESHOLD must be at least 1")
    if config.output_dpi not in SUPPORTED_DPI:
        raise ServiceNotConfigured(f"OUTPUT_DPI must be one of {SUPPORTED_DPI}")
    if config.default_page_size not in SUPPORTED_PAGE_SIZES:
        raise ServiceNotConfigured(f"DEFAULT_PAGE_SIZE must be one of {SUPPORTED_PAGE_SIZES}")
    if config.max_group_rows < 1:
        raise ServiceNotConfigured("MAX_GROUP_ROWS must be at least 1")
    if config.save_retry_attempts < 1:
        raise ServiceNotConfigured("SAVE_RETRY_ATTEMPTS must be at least 1")


def get_pipeline_config(overrides: Optional[dict] = None) -> PipelineConfig:
    """
    Load the pipeline configuration from Django settings.

    Args:
        overrides: Optional dict of settings keys applied on top of
            ``settings.DOCUMENT_PIPELINE`` (useful for tests and tooling)

    Returns:
        Validated PipelineConfig

    Raises:
        ServiceNotConfigured: If a value is missing, malformed or inconsistent
    """
    raw = _merge_dict(PIPELINE_DEFAULTS, getattr(settings, SETTINGS_KEY, None))
    raw = _merge_dict(raw, overrides)

    try:
        config = PipelineConfig(
            pool_max_size=int(raw['POOL_MAX_SIZE']),
            pool_min_size=int(raw['POOL_MIN_SIZE']),
            pool_idle_timeout=float(raw['POOL_IDLE_TIMEOUT']),
            pool_acquire_timeout=float(raw['POOL_ACQUIRE_TIMEOUT']),
            pool_render_timeout=float(raw['POOL_RENDER_TIMEOUT']),
            pool_startup_timeout=float(raw['POOL_STARTUP_TIMEOUT']),
            pool_crash_alert_threshold=int(raw['POOL_CRASH_ALERT_THRESHOLD']),
            output_dpi=int(raw['OUTPUT_DPI']),
            default_page_size=str(raw['DEFAULT_PAGE_SIZE']).lower(),
            max_group_rows=int(raw['MAX_GROUP_ROWS']),
            save_retry_attempts=int(raw['SAVE_RETRY_ATTEMPTS']),
        )
    except (TypeError, ValueError) as e:
        raise ServiceNotConfigured(f"Invalid {SETTINGS_KEY} setting: {e}") from e

    _validate(config)
    return config
