import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


def load_env() -> None:
    """Load .env from the working directory if present.

    Variables already set in the environment win over the file.
    """
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str
    log_dir: Path
    max_workers: int
    resolve_timeout: Optional[float]
    db_max_retries: int


def _int(env: Mapping[str, str], key: str, default: int, minimum: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read COMAINT_* settings from the environment (or the given mapping)."""
    if env is None:
        env = os.environ

    timeout_raw = env.get("COMAINT_RESOLVE_TIMEOUT", "").strip()
    timeout = None
    if timeout_raw:
        try:
            timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(f"COMAINT_RESOLVE_TIMEOUT must be a number, got {timeout_raw!r}") from None
        if timeout <= 0:
            raise ValueError(f"COMAINT_RESOLVE_TIMEOUT must be positive, got {timeout}")

    return Settings(
        db_path=Path(env.get("COMAINT_DB_PATH") or "data/comaint.db"),
        log_level=(env.get("COMAINT_LOG_LEVEL") or "INFO").upper(),
        log_dir=Path(env.get("COMAINT_LOG_DIR") or "logs"),
        max_workers=_int(env, "COMAINT_MAX_WORKERS", 1, 1),
        resolve_timeout=timeout,
        db_max_retries=_int(env, "COMAINT_DB_MAX_RETRIES", 3, 0),
    )
