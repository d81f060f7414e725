"""Application configuration from environment variables and the hosts file."""

import configparser
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings


class ConfigError(Exception):
    """Raised when the hosts file cannot be read or is invalid."""


class StartCondition(str, Enum):
    """Initial liveness state of a host."""

    UP = "up"
    DOWN = "down"
    AUTO = "auto"


# Hosts file keys, in record order
HOST_KEYS = ("interval", "max_delay", "up_cmd", "down_cmd", "start_condition")
REQUIRED_HOST_KEYS = HOST_KEYS[:4]


def validate_hostname(v: str) -> str:
    """Validate hostname/IP to keep shell metacharacters out of log lines and commands.

    Validates against RFC 1123 hostname format and IPv4 dotted quads.
    """
    # RFC 1123 hostname pattern (allows digits at start)
    hostname_pattern = r'^[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?)*$'
    # IPv4 pattern
    ipv4_pattern = r'^(\d{1,3}\.){3}\d{1,3}$'

    if not v:
        raise ValueError('host name cannot be empty')
    if len(v) > 253:
        raise ValueError('hostname too long (max 253 chars)')

    dangerous_chars = set(';&|`$(){}[]<>\\\'\"!#*?~')
    if any(c in v for c in dangerous_chars):
        raise ValueError('hostname contains invalid characters')

    if not (re.match(hostname_pattern, v) or re.match(ipv4_pattern, v)):
        raise ValueError('invalid hostname format')

    return v


class HostConfig(BaseModel):
    """One monitored host as described in the hosts file."""

    name: str
    ping_interval: PositiveInt
    max_delay: PositiveInt
    up_command: str = ""
    down_command: str = ""
    start_condition: StartCondition = StartCondition.UP

    @field_validator('name')
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_hostname(v)

    @field_validator('start_condition', mode='before')
    @classmethod
    def normalize_start_condition(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Hosts file (INI, one section per host)
    config_file: Path = Path("icmpmonitor.cfg")

    # Log every probe and reply at INFO instead of DEBUG
    verbose: bool = False

    # Run the down command on every tick while a host stays down
    repeat_down_command: bool = False

    # Scheduler tick in seconds; defaults to the gcd of all ping intervals
    tick_seconds: Optional[PositiveInt] = None

    # Status web server
    web_enabled: bool = False
    web_host: str = "127.0.0.1"
    web_port: int = 8080

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"
    log_file: Optional[Path] = None
    log_syslog: bool = False

    @field_validator('log_format')
    @classmethod
    def check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            raise ValueError('log_format must be "text" or "json"')
        return v

    class Config:
        env_prefix = "ICMPMONITOR_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore unknown environment variables


# Global settings instance
settings = Settings()


def parse_hosts(text: str, source: str = "<string>") -> List[HostConfig]:
    """Parse hosts file contents.

    Args:
        text: INI formatted text, one section per host.
        source: Name used in error messages.

    Returns:
        Host descriptors in file order.

    Raises:
        ConfigError: If the text is not valid INI or a record is invalid.
    """
    parser = configparser.ConfigParser(interpolation=None, default_section="__defaults__")
    try:
        parser.read_string(text, source=source)
    except configparser.Error as e:
        raise ConfigError(f"Error reading {source}: {e}") from e

    hosts = []
    for record, name in enumerate(parser.sections()):
        section = parser[name]
        keys = set(section.keys())

        missing = [k for k in REQUIRED_HOST_KEYS if k not in keys]
        if missing:
            raise ConfigError(
                f"Not enough fields in record {record} ({name}) of {source}: "
                f"missing {', '.join(missing)}"
            )
        unknown = sorted(keys - set(HOST_KEYS))
        if unknown:
            raise ConfigError(
                f"Too many fields in record {record} ({name}) of {source}: "
                f"unexpected {', '.join(unknown)}"
            )

        try:
            host = HostConfig(
                name=name,
                ping_interval=section["interval"],
                max_delay=section["max_delay"],
                up_command=section["up_cmd"],
                down_command=section["down_cmd"],
                start_condition=section.get("start_condition", StartCondition.UP.value),
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid record {record} ({name}) in {source}: {e}") from e
        hosts.append(host)

    if not hosts:
        raise ConfigError(f"No hosts defined in {source}")

    return hosts


def load_hosts(path: Optional[Path] = None) -> List[HostConfig]:
    """Read host descriptors from the hosts file.

    Args:
        path: Hosts file. Defaults to the configured ``config_file``.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if path is None:
        path = settings.config_file
    path = Path(path)

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e

    return parse_hosts(text, source=str(path))
