"""Configuration management for pmassist."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PMASSIST_HOME = Path(os.environ.get("PMASSIST_HOME", Path.home() / "pmassist"))
CONFIG_FILE = PMASSIST_HOME / "config" / "pmassist.conf"
DATA_DIR = PMASSIST_HOME / "data"


@dataclass
class Config:
    """pmassist configuration."""

    notion_token: str = ""
    notion_database_id: str = ""
    todoist_api_token: str = ""
    data_file: str = ""
    calendar_file: str = ""
    timezone: str = "Europe/Rome"
    work_hours: str = "09:00-18:00"
    # Live sync
    poll_interval: int = 30
    error_log_size: int = 20
    stream_queue_size: int = 100
    # HTTP server
    http_host: str = "127.0.0.1"
    http_port: int = 3000

    @property
    def data_path(self) -> Path:
        if self.data_file:
            return Path(self.data_file).expanduser()
        return DATA_DIR / "tasks.json"

    @property
    def calendar_path(self) -> Path:
        if self.calendar_file:
            return Path(self.calendar_file).expanduser()
        return PMASSIST_HOME / "calendar.ics"


def _unquote(value: str) -> str:
    """Strip quotes, or an inline comment from an unquoted value."""
    for quote in ('"', "'"):
        if value.startswith(quote):
            end_quote = value.find(quote, 1)
            return value[1:end_quote] if end_quote != -1 else value[1:]
    if "#" in value:
        value = value.split("#")[0].strip()
    return value


def _int(key: str, value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {key.upper()}: {value!r}, using {default}")
        return default


def load_config(path: Path | None = None) -> Config:
    """Load configuration from pmassist.conf, falling back to environment variables."""
    config = Config(
        notion_token=os.environ.get("NOTION_TOKEN", ""),
        notion_database_id=os.environ.get("NOTION_DATABASE_ID", ""),
        todoist_api_token=os.environ.get("TODOIST_API_TOKEN", ""),
    )

    path = path or CONFIG_FILE
    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _unquote(value.strip())

        match key:
            case "notion_token":
                config.notion_token = value
            case "notion_database_id":
                config.notion_database_id = value
            case "todoist_api_token":
                config.todoist_api_token = value
            case "data_file":
                config.data_file = value
            case "calendar_file":
                config.calendar_file = value
            case "timezone":
                config.timezone = value
            case "work_hours":
                config.work_hours = value
            case "poll_interval":
                config.poll_interval = _int(key, value, config.poll_interval)
            case "error_log_size":
                config.error_log_size = _int(key, value, config.error_log_size)
            case "stream_queue_size":
                config.stream_queue_size = _int(key, value, config.stream_queue_size)
            case "http_host":
                config.http_host = value
            case "http_port":
                config.http_port = _int(key, value, config.http_port)
            case _:
                logger.debug(f"Ignoring unknown config key: {key}")

    return config
