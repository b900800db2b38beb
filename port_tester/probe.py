"""
Outbound probes.

A probe is one connection attempt to ``host:port`` followed by a single
write of PROBE_TOKEN and a single bounded read of the reply. There is no
retry: every target gets exactly one attempt and exactly one ProbeResult.
"""
import logging
import socket
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import DEFAULT_TIMEOUT, Protocol

logger = logging.getLogger(__name__)

PROBE_TOKEN = b"TEST\n"
REPLY_BUFFER_SIZE = 4096


class ErrorKind(Enum):
    DIAL = "dial"          # resolve/connect failed
    TIMEOUT = "timeout"    # dial or reply did not finish in time
    READ = "read"          # write/read failed or peer closed without a reply


@dataclass(frozen=True)
class ProbeTarget:
    host: str
    port: int

    def __str__(self):
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ProbeResult:
    target: ProbeTarget
    bytes_received: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, target, bytes_received):
        return cls(target=target, bytes_received=bytes_received)

    @classmethod
    def failure(cls, target, kind, error):
        return cls(target=target, error_kind=kind, error=error)

    @property
    def ok(self):
        return self.error_kind is None

    def format(self):
        """The report line: ``host:port: OK <n>`` or ``host:port: Error <why>``."""
        if self.ok:
            return f"{self.target}: OK {self.bytes_received}"
        return f"{self.target}: Error {self.error}"

    def __str__(self):
        return self.format()


def make_targets(hosts, port):
    """Build one ProbeTarget per host, all on ``port``."""
    return [ProbeTarget(str(host).strip(), int(port)) for host in hosts]


def _reason(e):
    if isinstance(e, OSError) and e.strerror:
        return e.strerror
    return str(e) or e.__class__.__name__


def _dial_udp(host, port, timeout):
    """
    Like socket.create_connection() for datagram sockets: try every resolved
    address and return the first socket that connects.
    """
    err = None
    for af, socktype, proto, _, sa in socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM):
        sock = socket.socket(af, socktype, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sa)
            return sock
        except OSError as e:
            err = e
            sock.close()
    if err is not None:
        raise err
    raise OSError(f"getaddrinfo returned no addresses for {host}")


def dial(target, protocol, timeout):
    """Open a connected socket to ``target``. The timeout stays set on the socket."""
    if protocol is Protocol.UDP:
        return _dial_udp(target.host, target.port, timeout)
    return socket.create_connection((target.host, target.port), timeout=timeout)


def probe_target(target, protocol=Protocol.TCP, timeout=DEFAULT_TIMEOUT):
    """Probe a single target once and return its ProbeResult. Never raises for network errors."""
    protocol = Protocol.from_name(protocol)
    proto = protocol.value

    try:
        sock = dial(target, protocol, timeout)
    except socket.timeout as e:
        logger.debug("dial %s %s timed out after %ss", proto, target, timeout)
        return ProbeResult.failure(target, ErrorKind.TIMEOUT, f"dial {proto} {target}: {_reason(e)}")
    except (OSError, UnicodeError) as e:
        # UnicodeError comes from IDNA encoding of malformed host names
        logger.debug("dial %s %s failed: %s", proto, target, e)
        return ProbeResult.failure(target, ErrorKind.DIAL, f"dial {proto} {target}: {_reason(e)}")

    with sock:
        try:
            sock.sendall(PROBE_TOKEN)
            reply = sock.recv(REPLY_BUFFER_SIZE)
        except socket.timeout as e:
            return ProbeResult.failure(target, ErrorKind.TIMEOUT, f"read {proto} {target}: {_reason(e)}")
        except OSError as e:
            logger.debug("exchange with %s %s failed: %s", proto, target, e)
            return ProbeResult.failure(target, ErrorKind.READ, f"read {proto} {target}: {_reason(e)}")

    if not reply:
        return ProbeResult.failure(target, ErrorKind.READ, f"read {proto} {target}: EOF")
    return ProbeResult.success(target, len(reply))


def probe_all(targets, protocol=Protocol.TCP, timeout=DEFAULT_TIMEOUT, sink=None):
    """
    Probe every target concurrently and wait for all of them.

    Each target runs in its own worker; the executor block is the completion
    barrier, so this returns only after every target produced exactly one
    result. ``sink``, if given, is called with each result as it completes,
    always from the calling thread. The returned list is in input order.
    """
    targets = list(targets)
    if not targets:
        return []

    protocol = Protocol.from_name(protocol)
    results = [None] * len(targets)

    with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="probe") as executor:
        futures = {
            executor.submit(probe_target, target, protocol, timeout): i
            for i, target in enumerate(targets)
        }
        for future in as_completed(futures):
            result = future.result()
            results[futures[future]] = result
            if sink is not None:
                sink(result)

    return results
