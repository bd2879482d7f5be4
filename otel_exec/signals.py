"""Forward termination signals from the wrapper to its child.

Python runs signal handlers on the main thread, which spends the child's
lifetime blocked in ``Popen.wait``. The handler therefore only queues the
signal; a listener thread picks it up and sends it on to the child.
"""

import enum
import queue
import signal
import threading
from typing import Dict, List, Optional, Sequence

from otel_exec.logger import get_logger

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_CLOSED = object()

log = get_logger(__name__)


class RelayState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    FORWARDED = "forwarded"
    STOPPED = "stopped"


class SignalRelay:
    """Relay the first termination signal received to the attached child.

    Usage::

        relay = SignalRelay()
        relay.start()            # before spawning
        child = subprocess.Popen(...)
        relay.attach(child)
        child.wait()
        relay.stop()             # returns once the listener is done

    Only one signal is forwarded; later ones are dropped. A signal that
    arrives before a child is attached is ignored and the relay keeps
    listening.
    """

    def __init__(self, signals: Sequence[int] = DEFAULT_SIGNALS):
        self.signals = tuple(signals)
        self.forwarded: Optional[int] = None
        self.dropped: List[int] = []
        self._state = RelayState.IDLE
        self._lock = threading.Lock()
        self._queue: "queue.Queue" = queue.Queue()
        self._done = threading.Event()
        self._child = None
        self._previous: Dict[int, object] = {}
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> RelayState:
        with self._lock:
            return self._state

    def _set_state(self, state: RelayState) -> None:
        with self._lock:
            self._state = state
        log.debug("signal relay %s", state.value)

    def start(self) -> None:
        if self.state is not RelayState.IDLE:
            raise RuntimeError(f"signal relay already {self.state.value}")
        self._set_state(RelayState.LISTENING)
        self._thread = threading.Thread(target=self._listen, name="otel-exec-signal-relay", daemon=True)
        self._thread.start()
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle)

    def attach(self, child) -> None:
        """Record the spawned child. Call once, right after spawning."""
        if self._child is not None:
            raise RuntimeError("signal relay already attached to a child")
        self._child = child

    def _handle(self, signum, frame):
        if self._done.is_set():
            self.dropped.append(signum)
            return
        self._queue.put_nowait(signum)

    def _listen(self) -> None:
        try:
            while True:
                item = self._queue.get()
                if item is _CLOSED:
                    break
                if self._child is None:
                    log.debug("signal %s arrived before the child was spawned", signal.Signals(item).name)
                    continue
                self._forward(item)
                break
        finally:
            self._set_state(RelayState.STOPPED)
            self._done.set()

    def _forward(self, signum: int) -> None:
        child = self._child
        if child.poll() is not None:
            log.debug("child already exited, dropping %s", signal.Signals(signum).name)
            return
        try:
            child.send_signal(signum)
        except OSError as err:
            log.debug("unable to forward signal %s: %s", signal.Signals(signum).name, err)
            return
        self.forwarded = signum
        self._set_state(RelayState.FORWARDED)
        log.debug("forwarded %s to pid %s", signal.Signals(signum).name, child.pid)

    def stop(self, timeout: Optional[float] = None, release_handlers: bool = True) -> bool:
        """Stop listening and wait for the listener to finish.

        With ``release_handlers=False`` the handlers stay installed and any
        further signal is dropped until :meth:`release` is called.
        Returns True once the listener has confirmed it is done.
        """
        if self.state is RelayState.IDLE:
            self._set_state(RelayState.STOPPED)
            self._done.set()
            return True
        self._queue.put_nowait(_CLOSED)
        finished = self._done.wait(timeout)
        if finished and self._thread is not None:
            self._thread.join()
        if release_handlers:
            self.release()
        return finished

    def release(self) -> None:
        """Restore the handlers that were in place before :meth:`start`."""
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()
        if self.dropped:
            log.debug("dropped signals %s", ", ".join(signal.Signals(s).name for s in self.dropped))

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
