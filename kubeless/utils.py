import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .types import Context, DEFAULT_MEMORY_LIMIT, DEFAULT_PORT, DEFAULT_TIMEOUT


FUNC_HANDLER_ENV = "FUNC_HANDLER"
FUNC_PORT_ENV = "FUNC_PORT"
FUNC_TIMEOUT_ENV = "FUNC_TIMEOUT"
FUNC_RUNTIME_ENV = "FUNC_RUNTIME"
FUNC_MEMORY_LIMIT_ENV = "FUNC_MEMORY_LIMIT"
FUNC_HOST_ENV = "FUNC_HOST"
FUNC_LOG_PATH_ENV = "FUNC_LOG_PATH"

DEFAULT_HOST = "0.0.0.0"


class KubelessError(Exception):
    """Base class for errors raised by the runtime."""


class ConfigError(KubelessError):
    """The process configuration does not allow the server to start."""


class BodyReadError(KubelessError):
    """The request body could not be read from the connection."""


@dataclass(frozen=True)
class Config:
    handler: str
    port: int = DEFAULT_PORT
    timeout: int = DEFAULT_TIMEOUT
    runtime: str = ""
    memory_limit: int = DEFAULT_MEMORY_LIMIT
    host: str = DEFAULT_HOST
    log_path: Optional[Path] = None

    def context(self) -> Context:
        return Context(
            function_name=self.handler,
            runtime=self.runtime,
            timeout=self.timeout,
            memory_limit=self.memory_limit,
        )


def parse_size(value: Optional[str], default: int) -> int:
    """Parse a non-negative integer, falling back to ``default`` on any problem."""
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    if parsed < 0:
        return default
    return parsed


def parse_port(value: Optional[str], default: int = DEFAULT_PORT) -> int:
    port = parse_size(value, default)
    if port > 65535:
        return default
    return port


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Read the runtime configuration from the environment.

    Only ``FUNC_HANDLER`` is required. Numeric settings that cannot be parsed
    silently take their defaults.
    """
    env = os.environ if environ is None else environ
    handler = env.get(FUNC_HANDLER_ENV)
    if not handler:
        raise ConfigError(f"the {FUNC_HANDLER_ENV} environment variable must be provided")
    log_path = env.get(FUNC_LOG_PATH_ENV)
    return Config(
        handler=handler,
        port=parse_port(env.get(FUNC_PORT_ENV)),
        timeout=parse_size(env.get(FUNC_TIMEOUT_ENV), DEFAULT_TIMEOUT),
        runtime=env.get(FUNC_RUNTIME_ENV, ""),
        memory_limit=parse_size(env.get(FUNC_MEMORY_LIMIT_ENV), DEFAULT_MEMORY_LIMIT),
        host=env.get(FUNC_HOST_ENV) or DEFAULT_HOST,
        log_path=Path(log_path).expanduser() if log_path else None,
    )


def append_json(path: Path, record: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, sort_keys=True))
        f.write("\n")
