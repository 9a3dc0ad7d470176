"""
Call profiler that wraps capability interfaces and measures profiled operations.

An interface is a class (usually an ABC) whose operations are tagged with
``@profiled``. ``Profiler.wrap`` builds a subclass of the interface whose
methods forward to a target object, timing the tagged ones.
"""

import functools
import inspect
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Optional, TextIO, Tuple, Type, TypeVar, Union

T = TypeVar('T')

_PROFILED_ATTR = '__profiled__'


class InvalidArgumentError(ValueError):
    """Raised when an interface cannot be wrapped."""
    pass


class ProfilerInternalError(RuntimeError):
    """Raised when the profiler itself fails to dispatch a call."""
    pass


def profiled(func: Callable) -> Callable:
    """Mark an interface operation for duration measurement."""
    setattr(func, _PROFILED_ATTR, True)
    return func


def is_profiled(func: Any) -> bool:
    return bool(getattr(func, _PROFILED_ATTR, False))


def _public_operations(interface: type) -> Dict[str, Callable]:
    return {
        name: member
        for name, member in inspect.getmembers(interface, inspect.isfunction)
        if not name.startswith('_')
    }


def profiled_operations(interface: type) -> FrozenSet[str]:
    """Names of the operations of an interface tagged with @profiled."""
    return frozenset(
        name for name, member in _public_operations(interface).items() if is_profiled(member)
    )


def format_duration(duration: timedelta) -> str:
    """Render a duration as ``XmYsZms``."""
    total_ms = duration // timedelta(milliseconds=1)
    minutes, rest = divmod(total_ms, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{minutes}m {seconds}s {millis}ms"


class ProfilingState:
    """Thread-safe accumulator of elapsed time per ``Type#operation``."""

    def __init__(self):
        self._lock = threading.Lock()
        self._totals: Dict[str, float] = {}

    @staticmethod
    def key(cls: type, operation: str) -> str:
        return f"{cls.__module__}.{cls.__qualname__}#{operation}"

    def record(self, cls: type, operation: str, seconds: float):
        if seconds < 0:
            raise ValueError("Elapsed time cannot be negative")
        key = self.key(cls, operation)
        with self._lock:
            self._totals[key] = self._totals.get(key, 0.0) + seconds

    def durations(self) -> Dict[str, timedelta]:
        """Accumulated durations in first-recorded order."""
        with self._lock:
            return {key: timedelta(seconds=total) for key, total in self._totals.items()}

    def write(self, stream: TextIO):
        for key, duration in self.durations().items():
            stream.write(f"{key} took {format_duration(duration)}\n")


class ProfilingInterceptor:
    """Forwards calls to the target, timing the profiled ones."""

    def __init__(self, target: Any, state: ProfilingState, clock: Callable[[], float]):
        self.target = target
        self.state = state
        self.clock = clock

    def invoke(self, operation: str, timed: bool, args: Tuple, kwargs: Dict[str, Any]) -> Any:
        try:
            bound = getattr(self.target, operation)
        except AttributeError as e:
            raise ProfilerInternalError(
                f"{type(self.target).__name__} has no operation {operation!r}"
            ) from e

        if not timed:
            return bound(*args, **kwargs)

        start = self.clock()
        try:
            return bound(*args, **kwargs)
        finally:
            # A clock stepping backwards must not mask the call's own outcome
            elapsed = max(0.0, self.clock() - start)
            self.state.record(type(self.target), operation, elapsed)


def _forwarding_method(name: str, original: Callable, timed: bool) -> Callable:
    @functools.wraps(original)
    def method(self, *args, **kwargs):
        return self._interceptor.invoke(name, timed, args, kwargs)

    # functools.wraps copies __isabstractmethod__; the proxy method is concrete
    method.__isabstractmethod__ = False
    return method


_proxy_classes: Dict[type, type] = {}
_proxy_classes_lock = threading.Lock()


def _proxy_class_for(interface: type) -> type:
    with _proxy_classes_lock:
        proxy_class = _proxy_classes.get(interface)
        if proxy_class is None:
            namespace: Dict[str, Any] = {
                name: _forwarding_method(name, member, is_profiled(member))
                for name, member in _public_operations(interface).items()
            }

            def __init__(self, interceptor: ProfilingInterceptor):
                self._interceptor = interceptor

            def __repr__(self):
                return f"<profiled {interface.__name__} proxy for {self._interceptor.target!r}>"

            namespace['__init__'] = __init__
            namespace['__repr__'] = __repr__
            proxy_class = type(f"Profiled{interface.__name__}", (interface,), namespace)
            _proxy_classes[interface] = proxy_class
        return proxy_class


class Profiler:
    """
    Wraps objects so that calls to their profiled operations are timed.

    One profiler covers one run: every proxy it creates records into the same
    ``ProfilingState`` and the report header carries the profiler's start time.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter,
                 start_time: Optional[datetime] = None):
        self.clock = clock
        self.start_time = start_time or datetime.now(timezone.utc)
        self.state = ProfilingState()
        self.logger = logging.getLogger(__name__)

    def wrap(self, interface: Type[T], target: T) -> T:
        """
        Return a proxy implementing interface that forwards to target.

        Raises:
            InvalidArgumentError: interface is not a class, has no profiled
                operations, or target does not implement it
        """
        if not isinstance(interface, type):
            raise InvalidArgumentError(f"Expected a class, got {interface!r}")

        operations = profiled_operations(interface)
        if not operations:
            raise InvalidArgumentError(f"{interface.__name__} declares no profiled operations")

        if not isinstance(target, interface):
            raise InvalidArgumentError(
                f"{type(target).__name__} does not implement {interface.__name__}"
            )

        self.logger.debug(f"Profiling {sorted(operations)} on {type(target).__name__}")
        interceptor = ProfilingInterceptor(target, self.state, self.clock)
        return _proxy_class_for(interface)(interceptor)

    def write_data(self, target: Union[str, Path, TextIO]):
        """
        Write the profiling report to a stream or to a file.

        A file that already exists is appended to; otherwise it is created.
        """
        if isinstance(target, (str, Path)):
            path = Path(target)
            with open(path, 'a', encoding='utf-8') as f:
                self._write(f)
            self.logger.info(f"Profiling data written to {path}")
        else:
            self._write(target)

    def _write(self, stream: TextIO):
        started = self.start_time.astimezone(timezone.utc)
        stream.write(f"Run at {format_datetime(started, usegmt=True)}\n")
        self.state.write(stream)
        stream.write("\n")
