from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    database_path: Path
    tz: str
    catalog_path: Path
    api_tokens: dict[str, int] = field(default_factory=dict)
    admin_panel_token: str | None = None
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    log_level: str = "INFO"


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_api_tokens(raw: str | None) -> dict[str, int]:
    """Parse ``token:user_id`` pairs separated by commas. Malformed pairs are skipped."""
    tokens: dict[str, int] = {}
    if not raw:
        return tokens
    for chunk in raw.split(","):
        token, sep, user_raw = chunk.strip().rpartition(":")
        if not sep or not token:
            continue
        try:
            tokens[token.strip()] = int(user_raw)
        except ValueError:
            continue
    return tokens


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/app.db")),
        tz=os.getenv("TZ", "Europe/Oslo"),
        catalog_path=Path(os.getenv("CATALOG_PATH", "./catalog.yaml")),
        api_tokens=parse_api_tokens(os.getenv("API_TOKENS")),
        admin_panel_token=os.getenv("ADMIN_PANEL_TOKEN") or None,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_parse_int(os.getenv("API_PORT"), 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
