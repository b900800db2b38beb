"""
Lifecycle of one port test run.

    IDLE -> LISTENER_STARTING -> AWAITING_READY -> PROBING
         -> DRAIN_GRACE -> SHUTTING_DOWN -> DONE

With ``no_listen`` the run goes from IDLE straight to PROBING; the drain
sleep and the shutdown signal still happen.
"""
import logging
import sys
import threading
import time
from enum import Enum

from .errors import ListenerBindError
from .listener import new_listener
from .probe import make_targets, probe_all

logger = logging.getLogger(__name__)

# How long to wait for the listener to bind when the configured delay is shorter.
MIN_READY_TIMEOUT = 5


class LifecycleState(Enum):
    IDLE = "idle"
    LISTENER_STARTING = "listener_starting"
    AWAITING_READY = "awaiting_ready"
    PROBING = "probing"
    DRAIN_GRACE = "drain_grace"
    SHUTTING_DOWN = "shutting_down"
    DONE = "done"


class PortTester:
    """
    Runs the listener (unless disabled), probes every target and shuts the
    listener down again. Owns the shutdown event and the listener.
    """

    def __init__(self, config, out=None, sleep=time.sleep):
        self.config = config
        self.out = out
        self.sleep = sleep
        self.shutdown = threading.Event()
        self.listener = None
        self.state = LifecycleState.IDLE
        self.history = [self.state]
        self.results = []

    def _enter(self, state):
        logger.debug("state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _emit(self, result):
        out = self.out if self.out is not None else sys.stdout
        print(result.format(), file=out, flush=True)

    def start_listener(self):
        """Start the listener thread and block until it is bound."""
        c = self.config
        self._enter(LifecycleState.LISTENER_STARTING)
        self.listener = new_listener(c.protocol, c.bind_address, c.port, shutdown=self.shutdown)
        self.listener.start()

        self._enter(LifecycleState.AWAITING_READY)
        started = time.monotonic()
        if not self.listener.wait_ready(max(c.delay, MIN_READY_TIMEOUT)):
            raise ListenerBindError(f"listener on port {c.port} did not come up")

        # the rest of the delay is for the listeners on the other hosts
        remaining = c.delay - (time.monotonic() - started)
        if remaining > 0:
            logger.debug("waiting %.1fs before probing", remaining)
            self.sleep(remaining)

    def stop_listener(self):
        self._enter(LifecycleState.SHUTTING_DOWN)
        self.shutdown.set()
        if self.listener is not None:
            self.listener.stop()

    def run(self):
        """
        Run the whole lifecycle and return the probe results in target order.
        Raises ListenerBindError if listening is enabled and the bind fails.
        """
        c = self.config
        try:
            if c.listen:
                self.start_listener()

            self._enter(LifecycleState.PROBING)
            targets = make_targets(c.targets, c.port)
            self.results = probe_all(targets, c.protocol, c.timeout, sink=self._emit)

            self._enter(LifecycleState.DRAIN_GRACE)
            logger.debug("sleeping %ss", c.sleep)
            self.sleep(c.sleep)
        finally:
            self.stop_listener()

        self._enter(LifecycleState.DONE)
        return self.results


def run(config, out=None):
    """Validate ``config`` and run one full port test."""
    config.validate()
    return PortTester(config, out=out).run()
