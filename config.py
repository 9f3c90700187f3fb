"""
Configuration management for ReelHost
-------------------------------------
Resolves command-line values, environment variables and built-in
defaults into the immutable configuration the server runs with.
"""

import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

from certificates import CertificateManager
from media_index import list_media_files

USER_ENV = "REELHOST_USER"
PASS_ENV = "REELHOST_PASS"
LOG_LEVEL_ENV = "REELHOST_LOG_LEVEL"
LOG_DIR_ENV = "REELHOST_LOG_DIR"
LOG_MAX_BYTES_ENV = "REELHOST_LOG_MAX_BYTES"
LOG_BACKUP_COUNT_ENV = "REELHOST_LOG_BACKUP_COUNT"

DEFAULT_USERNAME = "user"
DEFAULT_HOST = "::"
DEFAULT_PORT = "443"

# Passwords this short or shorter only trigger a warning
WEAK_PASSWORD_LENGTH = 10

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when configuration values are unusable"""


@dataclass(frozen=True)
class ServerConfig:
    """Resolved server configuration, fixed for the lifetime of the process"""

    host: str
    port: int
    root_path: str
    username: str
    password: str
    media_files: Tuple[str, ...] = ()

    @property
    def listen_address(self) -> Tuple[str, int]:
        return self.host, self.port

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (excluding sensitive data)"""
        return {
            "host": self.host,
            "port": self.port,
            "root_path": self.root_path,
            "username": self.username,
            "media_file_count": len(self.media_files),
        }


@dataclass(frozen=True)
class LogSettings:
    """Logging settings, resolved separately so gen-cert can log too"""

    level: str = "INFO"
    directory: Optional[str] = None
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5


def generate_password() -> str:
    """16 URL-safe characters from 12 random bytes, without padding"""
    return secrets.token_urlsafe(12)


def _first_set(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def _resolve_username(user: Optional[str], environ: Mapping[str, str]) -> str:
    username = _first_set(user, environ.get(USER_ENV)) or DEFAULT_USERNAME
    if ":" in username:
        raise ValidationError("Username cannot contain a colon")
    return username


def _resolve_password(password: Optional[str], environ: Mapping[str, str]) -> str:
    resolved = _first_set(password, environ.get(PASS_ENV))
    if not resolved:
        return generate_password()
    if len(resolved) <= WEAK_PASSWORD_LENGTH:
        logger.warning(
            f"Password is recommended to be longer than {WEAK_PASSWORD_LENGTH} characters"
        )
    return resolved


def _resolve_port(port: Union[str, int, None]) -> int:
    raw = DEFAULT_PORT if port is None or port == "" else port
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Port must be a number, got: {raw!r}") from e
    if not (1 <= value <= 65535):
        raise ValidationError(f"Port must be between 1 and 65535, got: {value}")
    return value


def _resolve_media_path(path: Optional[str]) -> Tuple[str, Tuple[str, ...]]:
    if not path:
        raise ValidationError("Path must point to a valid directory: no path provided")

    root_path = os.path.normpath(path)
    if not Path(root_path).is_dir():
        raise ValidationError(
            f"Path must point to a valid directory: {root_path} is not a directory"
        )

    try:
        media_files = tuple(list_media_files(root_path))
    except OSError as e:
        raise ValidationError(f"Path must point to a valid directory: {e}") from e

    if not media_files:
        logger.warning(
            f"Provided path does not contain any valid media files: {root_path}"
        )
    return root_path, media_files


def resolve_config(
    user: Optional[str] = None,
    password: Optional[str] = None,
    host: Optional[str] = None,
    port: Union[str, int, None] = None,
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    certificates: Optional[CertificateManager] = None,
) -> ServerConfig:
    """
    Build the server configuration.

    Explicit values win over environment variables, which win over the
    built-in defaults. Only the username and password have environment
    fallbacks. Empty strings count as unset.

    The media directory is indexed and the TLS certificate pair checked as
    part of resolution, so a returned config is ready to serve.

    Raises:
        ValidationError: bad username, port or media path
        CertificateMissingError: certificate or key file absent
    """
    if environ is None:
        environ = os.environ
    if certificates is None:
        certificates = CertificateManager()

    username = _resolve_username(user, environ)
    resolved_password = _resolve_password(password, environ)
    resolved_port = _resolve_port(port)
    root_path, media_files = _resolve_media_path(path)

    certificates.check_exists()

    return ServerConfig(
        host=host or DEFAULT_HOST,
        port=resolved_port,
        root_path=root_path,
        username=username,
        password=resolved_password,
        media_files=media_files,
    )


def resolve_log_settings(
    log_level: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> LogSettings:
    """Resolve logging settings from an explicit level and the environment"""
    if environ is None:
        environ = os.environ

    try:
        max_bytes = int(environ.get(LOG_MAX_BYTES_ENV, "10485760"))
        backup_count = int(environ.get(LOG_BACKUP_COUNT_ENV, "5"))
    except ValueError as e:
        raise ValidationError(f"Invalid log rotation setting: {e}") from e

    return LogSettings(
        level=_first_set(log_level, environ.get(LOG_LEVEL_ENV)) or "INFO",
        directory=environ.get(LOG_DIR_ENV) or None,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def load_config(
    user: Optional[str] = None,
    password: Optional[str] = None,
    host: Optional[str] = None,
    port: Union[str, int, None] = None,
    path: Optional[str] = None,
    certificates: Optional[CertificateManager] = None,
) -> ServerConfig:
    """Load a .env file if one exists, then resolve against the process environment"""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    return resolve_config(
        user=user,
        password=password,
        host=host,
        port=port,
        path=path,
        environ=os.environ,
        certificates=certificates,
    )


def create_sample_env_file() -> None:
    """Create a sample .env file with default values"""
    sample_env = f"""# ReelHost Configuration
# Copy this file to .env and modify the values as needed.
# Command-line flags take precedence over these values.

# Basic auth credentials
{USER_ENV}={DEFAULT_USERNAME}
# Leave empty to generate a random password on every start
{PASS_ENV}=

# Logging Settings
{LOG_LEVEL_ENV}=INFO
# Set to a directory to also write rotating log files
{LOG_DIR_ENV}=
{LOG_MAX_BYTES_ENV}=10485760
{LOG_BACKUP_COUNT_ENV}=5
"""

    env_file = Path(".env.example")
    with open(env_file, "w", encoding="utf-8") as f:
        f.write(sample_env)

    print(f"Sample environment file created: {env_file}")
    print("Copy this to .env and update the values for your deployment")
