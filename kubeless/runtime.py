import importlib
import importlib.util
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .metrics import CALL_HISTOGRAM, CALL_TOTAL, FAILURES_TOTAL
from .types import Context, Event, UserFunction
from .utils import ConfigError, append_json, load_config


EVENT_HEADERS = {
    "event_id": "event-id",
    "event_type": "event-type",
    "event_time": "event-time",
    "event_namespace": "event-namespace",
}

# Methods whose request body is read and handed to the function
PAYLOAD_METHODS = frozenset({"POST"})

Candidate = Union[UserFunction, Tuple[str, UserFunction]]


class FunctionNotFoundError(ConfigError):
    def __init__(self, name: str, available: Sequence[str]):
        self.name = name
        self.available = list(available)
        super().__init__(
            f"No function named {name} available, available functions are: {', '.join(self.available)}"
        )


class FunctionRegistry:
    """Ordered, read-only table of the functions a process can expose.

    Candidates are plain callables, registered under their ``__name__``, or
    explicit ``(name, callable)`` pairs. When a name is registered twice the
    first registration wins.
    """

    def __init__(self, candidates: Iterable[Candidate]):
        entries: List[Tuple[str, UserFunction]] = []
        for candidate in candidates:
            if isinstance(candidate, tuple):
                if len(candidate) != 2:
                    raise ConfigError(f"Expected a (name, function) pair, got {candidate!r}")
                name, func = candidate
            else:
                func = candidate
                name = getattr(func, "__name__", None)
                if not name:
                    raise ConfigError(f"Cannot determine a name for {func!r}; register it as (name, function)")
            if not callable(func):
                raise ConfigError(f"Function {name!r} is not callable")
            entries.append((str(name), func))
        if not entries:
            raise ConfigError("At least one function must be registered")
        self._entries: Tuple[Tuple[str, UserFunction], ...] = tuple(entries)

    def names(self) -> List[str]:
        return [name for name, _ in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return any(entry_name == name for entry_name, _ in self._entries)

    def select(self, name: str) -> UserFunction:
        for entry_name, func in self._entries:
            if entry_name == name:
                return func
        raise FunctionNotFoundError(name, self.names())


def select_function(
    *candidates: Candidate,
    name: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> UserFunction:
    """Return the candidate named by ``name``, or by ``FUNC_HANDLER`` when omitted."""
    if name is None:
        name = load_config(environ).handler
    return FunctionRegistry(candidates).select(name)


def load_entrypoint(ref: str) -> Tuple[str, UserFunction]:
    """Resolve ``module:function`` or ``path/to/file.py:function`` to a named callable."""
    module_ref, _, func_name = ref.rpartition(":")
    if not module_ref or not func_name:
        raise ConfigError(f"Invalid entrypoint {ref!r}; expected 'module:function' or 'file.py:function'")
    if module_ref.endswith(".py"):
        file_path = Path(module_ref).expanduser().resolve()
        if not file_path.exists():
            raise ConfigError(f"Cannot load module from {file_path}: file does not exist")
        mod_name = f"kubeless_fn_{file_path.stem}_{abs(hash(str(file_path)))}"
        mod = sys.modules.get(mod_name)
        if mod is None:
            spec = importlib.util.spec_from_file_location(mod_name, str(file_path))
            if spec is None or spec.loader is None:
                raise ConfigError(f"Cannot load module from {file_path}")
            mod = importlib.util.module_from_spec(spec)
            sys.modules[spec.name] = mod
            spec.loader.exec_module(mod)  # type: ignore
    else:
        try:
            mod = importlib.import_module(module_ref)
        except ImportError as e:
            raise ConfigError(f"Cannot import module {module_ref!r}: {e}") from e
    try:
        func = getattr(mod, func_name)
    except AttributeError:
        raise ConfigError(f"Module {module_ref!r} has no function {func_name!r}") from None
    return func_name, func


def wants_body(method: str) -> bool:
    return method.upper() in PAYLOAD_METHODS


def build_event(method: str, headers: Mapping[str, str], body: Optional[bytes] = None) -> Event:
    data = (body or b"") if wants_body(method) else None
    fields = {attr: headers.get(header) or "" for attr, header in EVENT_HEADERS.items()}
    return Event(data=data, **fields)


def invoke_function(handler: UserFunction, event: Event, context: Context) -> bytes:
    """Call the user function, recording the call and its duration.

    Exceptions raised by the function are counted as failures and re-raised.
    """
    CALL_TOTAL.inc()
    try:
        with CALL_HISTOGRAM.time():
            result = handler(event, context)
    except Exception:
        FAILURES_TOTAL.inc()
        raise
    return normalize_result(result)


def normalize_result(result: Any) -> bytes:
    if isinstance(result, (bytes, bytearray)):
        return bytes(result)
    if isinstance(result, str):
        return result.encode()
    return str(result).encode()


def write_log(path: Path, event: Event, context: Context, status: int, body: bytes) -> None:
    """Append one JSON record describing an invocation and its response."""
    record: Dict[str, Any] = {
        "function": context.function_name,
        "event": {
            "id": event.event_id,
            "type": event.event_type,
            "time": event.event_time,
            "namespace": event.event_namespace,
            "size": None if event.data is None else len(event.data),
        },
        "response": {
            "status": status,
            "bodyPreview": body[:256].decode(errors="ignore"),
        },
    }
    append_json(path, record)
