"""
Call profiling for capability interfaces.
"""

from .profiler import (
    Profiler, ProfilingState, InvalidArgumentError, ProfilerInternalError,
    profiled, profiled_operations
)

__all__ = [
    'Profiler', 'ProfilingState', 'InvalidArgumentError', 'ProfilerInternalError',
    'profiled', 'profiled_operations'
]
