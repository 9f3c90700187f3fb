"""
Logging Configuration for ReelHost
----------------------------------
Colored console output, optional rotating log files, and structured
security events for rejected authentication attempts.
"""

import ipaddress
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, List

import colorlog
import psutil
import structlog

from config import LogSettings


class SecurityEventLogger:
    """Structured logger for authentication failures"""

    def __init__(self) -> None:
        self.logger = structlog.get_logger("security")

    def log_auth_failure(self, reason: str, ip_address: str, path: str) -> None:
        """Log a rejected request"""
        self.logger.warning(
            "authentication_failed",
            reason=reason,
            ip_address=ip_address,
            path=path,
        )


def setup_logging(settings: LogSettings) -> Dict[str, Any]:
    """
    Set up the logging system for the application

    Returns:
        Dict containing the root logger and the handlers attached to it
    """
    # Configure structlog for structured logging
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    try:
        root_logger.setLevel(getattr(logging, settings.level.upper()))
    except AttributeError:
        # Invalid log level, fall back to INFO
        root_logger.setLevel(logging.INFO)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    root_logger.addHandler(console_handler)

    components: Dict[str, Any] = {
        "root_logger": root_logger,
        "console_handler": console_handler,
    }

    if settings.directory:
        log_dir = Path(settings.directory)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s [%(pathname)s:%(lineno)d]"
        )

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "app.log",
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        # Error-only handler for critical issues
        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "error.log",
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

        components["file_handler"] = file_handler
        components["error_handler"] = error_handler
        logging.info(f"Logging to directory: {log_dir}")

    # werkzeug logs every request at INFO; keep only problems
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return components


def get_unicast_addresses() -> List[str]:
    """Addresses of local interfaces that remote clients could connect to"""
    addresses = []
    for interface_addresses in psutil.net_if_addrs().values():
        for address in interface_addresses:
            try:
                ip = ipaddress.ip_address(address.address.split("%")[0])
            except ValueError:
                # MAC addresses and the like
                continue
            if (
                ip.is_loopback
                or ip.is_link_local
                or ip.is_multicast
                or ip.is_unspecified
            ):
                continue
            addresses.append(str(ip))
    return addresses


def log_listen_addresses() -> None:
    """Print the addresses the server can be reached on"""
    print("Valid unicast addresses:")
    for address in get_unicast_addresses():
        print(f"  {address}")
    print()
