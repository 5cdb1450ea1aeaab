"""
Environment loading and runtime settings.

Settings are read from process environment variables, optionally seeded
from a ``.env`` file in the working directory.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


def load_env(env_path: Optional[Path] = None) -> bool:
    """Load .env from project root if present.

    Existing environment variables are never overridden.

    Returns:
        True if a file was found and loaded
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(dotenv_path=env_path, override=False)


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _require_min(key: str, value: int, minimum: int) -> int:
    if value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the fill pipeline."""

    database_url: str = "sqlite:///data/etymofill.db"
    llm_proxy_url: str = "http://llm-proxy:8081"
    llm_timeout: float = 120.0
    default_language: str = "Korean"
    default_workers: int = 5
    max_workers: int = 100
    default_delay_ms: int = 3000
    max_retries: int = 3
    rate_limit_backoff: float = 60.0
    poll_interval: float = 0.1
    idle_interval: float = 0.5
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (default: os.environ)

        Raises:
            ValueError: If a numeric variable cannot be parsed or is out of range
        """
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            database_url=env.get("DATABASE_URL") or defaults.database_url,
            llm_proxy_url=env.get("LLM_PROXY_URL") or defaults.llm_proxy_url,
            llm_timeout=_get_float(env, "LLM_TIMEOUT", defaults.llm_timeout),
            default_language=env.get("FILL_DEFAULT_LANGUAGE") or defaults.default_language,
            default_workers=_require_min(
                "FILL_DEFAULT_WORKERS", _get_int(env, "FILL_DEFAULT_WORKERS", defaults.default_workers), 1
            ),
            max_workers=_require_min("FILL_MAX_WORKERS", _get_int(env, "FILL_MAX_WORKERS", defaults.max_workers), 1),
            default_delay_ms=_get_int(env, "FILL_DEFAULT_DELAY_MS", defaults.default_delay_ms),
            max_retries=_require_min("FILL_MAX_RETRIES", _get_int(env, "FILL_MAX_RETRIES", defaults.max_retries), 0),
            rate_limit_backoff=_get_float(env, "FILL_RATE_LIMIT_BACKOFF", defaults.rate_limit_backoff),
            poll_interval=_get_float(env, "FILL_POLL_INTERVAL", defaults.poll_interval),
            idle_interval=_get_float(env, "FILL_IDLE_INTERVAL", defaults.idle_interval),
            log_level=env.get("LOG_LEVEL") or defaults.log_level,
            log_dir=env.get("LOG_DIR") or defaults.log_dir,
        )

    def resolve_workers(self, workers: Optional[int]) -> int:
        """Apply the default and clamp to [1, max_workers]."""
        if workers is None or workers <= 0:
            workers = self.default_workers
        return min(workers, self.max_workers)

    def resolve_delay_ms(self, delay_ms: Optional[int]) -> int:
        if delay_ms is None or delay_ms <= 0:
            return self.default_delay_ms
        return delay_ms
