"""Ctrl-C handling shared by commands that talk to GitHub."""

from __future__ import annotations

import contextlib
import signal
import threading


@contextlib.contextmanager
def cancel_on_interrupt(event: threading.Event):
    """First Ctrl-C sets ``event`` so waits unwind cleanly; a second one aborts."""

    def handler(signum, frame):
        if event.is_set():
            raise KeyboardInterrupt
        event.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)
