"""Observers for the build step event bus.

Observers subscribe to step events and perform side effects such as writing
the build log. They can be attached or detached without touching the step.
"""

from .console import ConsoleObserver

__all__ = [
    "ConsoleObserver",
]
