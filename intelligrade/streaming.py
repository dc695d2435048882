"""
streaming.py
======================

Cancellable stream of text fragments.

A producer thread pulls fragments from an upstream iterator (the Gemini
streaming response) and puts events on a queue; the consumer iterates the
stream and gets the fragments in arrival order:

    ("fragment", text)   one piece of the reply
    ("error", exc)       upstream failed mid-stream
    ("end", None)        no more events

CancelToken stops the producer at the next fragment boundary. The consumer
then sees a normal end of iteration.

A FragmentStream can be consumed once.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterable, Iterator, Optional, Tuple

from .errors import ServiceError

logger = logging.getLogger(__name__)

_FRAGMENT = "fragment"
_ERROR = "error"
_END = "end"

# Seconds between cancellation checks while the consumer waits.
_POLL_INTERVAL = 0.1


class CancelToken:
    """Set-once cancellation flag shared by producer and consumer."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class FragmentStream:
    """
    Lazy, finite, single-use sequence of text fragments.

    ``source_factory`` is called on the producer thread and must return an
    iterable of strings. It is not called until iteration starts.
    """

    def __init__(
        self,
        source_factory: Callable[[], Iterable[str]],
        cancel_token: Optional[CancelToken] = None,
    ):
        self._source_factory = source_factory
        self.cancel_token = cancel_token or CancelToken()
        self._queue: "queue.Queue[Tuple[str, object]]" = queue.Queue()
        self._started = False
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------
    def _produce(self) -> None:
        try:
            for fragment in self._source_factory():
                if self.cancel_token.cancelled:
                    break
                if fragment:
                    self._queue.put((_FRAGMENT, fragment))
        except Exception as e:
            logger.warning("Reply stream failed: %s", e)
            self._queue.put((_ERROR, e))
        finally:
            self._queue.put((_END, None))

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("FragmentStream can only be consumed once")
        self._started = True
        self._thread = threading.Thread(target=self._produce, name="fragment-stream", daemon=True)
        self._thread.start()
        return self._consume()

    def _consume(self) -> Iterator[str]:
        while True:
            try:
                kind, payload = self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self.cancel_token.cancelled:
                    return
                continue

            if kind == _END or self.cancel_token.cancelled:
                return
            if kind == _ERROR:
                raise ServiceError("Failed to get response from AI tutor.") from payload
            yield payload  # type: ignore[misc]

    def cancel(self) -> None:
        self.cancel_token.cancel()

