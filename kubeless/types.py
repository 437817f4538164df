from dataclasses import dataclass
from typing import Callable, Optional


# The default timeout for user functions, in seconds
DEFAULT_TIMEOUT = 180

# 0 means no memory limit was provided
DEFAULT_MEMORY_LIMIT = 0

DEFAULT_PORT = 8080


@dataclass(frozen=True)
class Event:
    """Information about a single call to the user function.

    ``data`` holds the request body for POST requests and is ``None`` for every
    other method. The remaining fields are copied verbatim from the
    ``event-id``, ``event-type``, ``event-time`` and ``event-namespace``
    request headers.
    """

    data: Optional[bytes] = None
    event_id: str = ""
    event_type: str = ""
    event_time: str = ""
    event_namespace: str = ""


@dataclass(frozen=True)
class Context:
    """Information about the environment the function runs in."""

    function_name: str
    runtime: str = ""
    timeout: int = DEFAULT_TIMEOUT  # informational, not enforced
    memory_limit: int = DEFAULT_MEMORY_LIMIT


UserFunction = Callable[[Event, Context], str]
