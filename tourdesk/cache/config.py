"""
Connection settings for the Valkey server backing the queue cache.
"""

import os
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Environment variable for each ValkeyConfig field that can be overridden
_ENV_VARS = {
    "host": "VALKEY_HOST",
    "port": "VALKEY_PORT",
    "password": "VALKEY_PASSWORD",
    "database": "VALKEY_DATABASE",
    "max_connections": "VALKEY_MAX_CONNECTIONS",
    "socket_timeout": "VALKEY_SOCKET_TIMEOUT",
    "socket_connect_timeout": "VALKEY_SOCKET_CONNECT_TIMEOUT",
    "retry_on_timeout": "VALKEY_RETRY_ON_TIMEOUT",
    "health_check_interval": "VALKEY_HEALTH_CHECK_INTERVAL",
    "max_connection_attempts": "VALKEY_MAX_CONNECTION_ATTEMPTS",
}


class ValkeyConnectionError(Exception):
    """Raised when the Valkey server cannot be reached."""


@dataclass
class ValkeyConfig:
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    retry_on_timeout: bool = True
    health_check_interval: int = 30
    decode_responses: bool = True
    max_connection_attempts: int = 3

    @classmethod
    def from_env(cls) -> "ValkeyConfig":
        """
        Read ``VALKEY_*`` variables; unset ones keep the dataclass defaults.

        An empty ``VALKEY_PASSWORD`` means no password.
        """
        overrides: Dict[str, Any] = {}
        types = {f.name: f.type for f in fields(cls)}

        for name, env_var in _ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw is None:
                continue
            if name == "password":
                overrides[name] = raw or None
            elif types[name] in (bool, "bool"):
                overrides[name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif types[name] in (int, "int"):
                overrides[name] = int(raw)
            elif types[name] in (float, "float"):
                overrides[name] = float(raw)
            else:
                overrides[name] = raw

        return cls(**overrides)

    @classmethod
    def for_desk(cls, desk_config) -> "ValkeyConfig":
        """
        Environment settings with the server address taken from the desk's
        ``TourdeskConfig``.
        """
        return replace(
            cls.from_env(),
            host=desk_config.valkey_host,
            port=desk_config.valkey_port,
            password=desk_config.valkey_password,
            database=desk_config.valkey_database,
        )

    def to_connection_pool_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = dict(
            host=self.host,
            port=self.port,
            db=self.database,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_connect_timeout,
            retry_on_timeout=self.retry_on_timeout,
            decode_responses=self.decode_responses,
        )
        if self.password:
            kwargs["password"] = self.password
        return kwargs

    def __str__(self) -> str:
        secret = "***" if self.password else "None"
        return f"valkey://{self.host}:{self.port}/{self.database} (password={secret})"
