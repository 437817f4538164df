"""Run a statically registered Python function as a Kubeless function."""

__version__ = "0.1.0"

from .types import Context, Event, UserFunction, DEFAULT_MEMORY_LIMIT, DEFAULT_PORT, DEFAULT_TIMEOUT
from .utils import BodyReadError, Config, ConfigError, KubelessError, load_config
from .runtime import FunctionNotFoundError, FunctionRegistry, select_function
from .server import serve, start

__all__ = [
    "BodyReadError",
    "Config",
    "ConfigError",
    "Context",
    "DEFAULT_MEMORY_LIMIT",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT",
    "Event",
    "FunctionNotFoundError",
    "FunctionRegistry",
    "KubelessError",
    "UserFunction",
    "load_config",
    "select_function",
    "serve",
    "start",
]
