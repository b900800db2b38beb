"""
Local echo listeners.

A listener binds one port for one protocol and answers every request with the
request bytes prefixed by a fixed label. Each listener runs its accept/read
loop in its own thread and starts a new daemon thread per TCP connection or
UDP datagram, so a slow client never blocks the loop.

Shutdown: ``stop()`` sets the shared shutdown event and closes the socket.
The loop checks the event before every wait and waits at most
``POLL_INTERVAL`` seconds at a time, so it always notices.
"""
import logging
import select
import socket
import threading

from .config import Protocol
from .errors import ConfigurationError, ListenerBindError

logger = logging.getLogger(__name__)

BACKLOG = 512
POLL_INTERVAL = 0.5
UDP_BUFFER_SIZE = 2048
MAX_LINE = 65536

REPLY_LABEL = b"Request received: "
FAILURE_MESSAGE = b"failed to read input"


def address_family(host):
    """AF_INET6 for IPv6 literals, AF_INET for everything else (including "")."""
    if host and ":" in host:
        return socket.AF_INET6
    return socket.AF_INET


def format_addr(addr):
    host, port = addr[0], addr[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class BaseListener(threading.Thread):
    protocol = None

    def __init__(self, host="", port=0, shutdown=None):
        super().__init__()
        self.host = host
        self.port = port
        self.actual_port = 0
        self.shutdown = shutdown if shutdown is not None else threading.Event()
        self.ready = threading.Event()
        self.error = None
        self.sock = None
        self.daemon = True
        self.name = f"{self.protocol.value}-listener-{port}"

    @property
    def address(self):
        return (self.host, self.actual_port)

    def _create_socket(self):
        raise NotImplementedError

    def _serve_forever(self):
        raise NotImplementedError

    def bind(self):
        """Create and bind the socket. Raises ListenerBindError on failure."""
        try:
            self.sock = self._create_socket()
        except OSError as e:
            raise ListenerBindError(
                f"could not listen on {self.protocol.value} {format_addr((self.host, self.port))}: {e}"
            ) from e
        self.actual_port = self.sock.getsockname()[1]
        logger.info("listening on %s %s", self.protocol.value, format_addr(self.address))
        self.ready.set()

    def serve(self):
        """
        Bind and run the loop in the calling thread until shutdown.

        Returns None on a clean shutdown; bind failures raise ListenerBindError
        before the loop starts. The socket is released on return.
        """
        self.bind()
        try:
            self._serve_forever()
        finally:
            self.sock.close()
            logger.info("listener on %s %s stopped", self.protocol.value, format_addr(self.address))

    def run(self):
        try:
            self.serve()
        except ListenerBindError as e:
            self.error = e
            logger.error("%s", e)
            # release waiters, wait_ready() re-raises the error
            self.ready.set()

    def wait_ready(self, timeout=5):
        """
        Block until the socket is bound. Returns False on timeout and raises
        the recorded ListenerBindError if binding failed.
        """
        if not self.ready.wait(timeout):
            return False
        if self.error is not None:
            raise self.error
        return True

    def stop(self, timeout=2):
        """Fire the shutdown signal and release the socket. Safe to call repeatedly."""
        self.shutdown.set()
        if self.sock:
            try:
                self.sock.close()
            except OSError:
                pass
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout=timeout)

    def _wait_readable(self):
        """True when a connection or datagram is waiting, False after POLL_INTERVAL."""
        r, _, _ = select.select([self.sock], [], [], POLL_INTERVAL)
        return bool(r)

    def _loop_error(self, what, e):
        """Decide what an error inside the loop means. True means keep serving."""
        if self.shutdown.is_set() or self.sock.fileno() == -1:
            return False
        logger.warning("%s on %s: %s", what, format_addr(self.address), e)
        # pause so a persistent error (e.g. EMFILE) does not spin
        self.shutdown.wait(POLL_INTERVAL)
        return True

    def _dispatch(self, target, *args):
        t = threading.Thread(target=target, args=args)
        t.daemon = True
        t.start()


class TcpListener(BaseListener):
    protocol = Protocol.TCP

    def _create_socket(self):
        sock = socket.socket(address_family(self.host), socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(BACKLOG)
        except OSError:
            sock.close()
            raise
        return sock

    def _serve_forever(self):
        while not self.shutdown.is_set():
            try:
                if not self._wait_readable():
                    continue
                conn, addr = self.sock.accept()
            except (OSError, ValueError) as e:
                if self._loop_error("could not accept connection", e):
                    continue
                break

            logger.debug("# incoming connection from %s", format_addr(addr))
            self._dispatch(self.handle_client, conn, addr)

    def handle_client(self, conn, addr):
        """
        Echo every newline-terminated line back with REPLY_LABEL until the peer
        goes away. A read error, EOF or a partial line at EOF gets
        FAILURE_MESSAGE and ends the connection.
        """
        with conn:
            reader = conn.makefile("rb")
            try:
                while True:
                    try:
                        line = reader.readline(MAX_LINE)
                    except OSError:
                        line = b""
                    if not line.endswith(b"\n"):
                        try:
                            conn.sendall(FAILURE_MESSAGE)
                        except OSError:
                            pass
                        return
                    conn.sendall(REPLY_LABEL + line)
            except OSError as e:
                logger.debug("connection from %s closed: %s", format_addr(addr), e)
            finally:
                reader.close()


class UdpListener(BaseListener):
    protocol = Protocol.UDP

    def _create_socket(self):
        sock = socket.socket(address_family(self.host), socket.SOCK_DGRAM)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        return sock

    def _serve_forever(self):
        while not self.shutdown.is_set():
            try:
                if not self._wait_readable():
                    continue
                data, addr = self.sock.recvfrom(UDP_BUFFER_SIZE)
            except (OSError, ValueError) as e:
                if self._loop_error("could not read datagram", e):
                    continue
                break

            logger.debug("# incoming datagram from %s", format_addr(addr))
            self._dispatch(self.handle_datagram, data, addr)

    def handle_datagram(self, data, addr):
        """Send a single labelled echo of ``data`` back to ``addr``."""
        try:
            self.sock.sendto(REPLY_LABEL + data, addr)
        except OSError as e:
            logger.debug("could not reply to %s: %s", format_addr(addr), e)


LISTENERS = {
    Protocol.TCP: TcpListener,
    Protocol.UDP: UdpListener,
}


def new_listener(protocol, host="", port=0, shutdown=None):
    """Create (but do not start) the listener for ``protocol``."""
    try:
        cls = LISTENERS[Protocol.from_name(protocol)]
    except KeyError:
        raise ConfigurationError(f"Invalid protocol given: {protocol!r}") from None
    return cls(host=host, port=port, shutdown=shutdown)
