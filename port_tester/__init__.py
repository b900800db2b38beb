"""
Dual-protocol (TCP/UDP) port reachability tester.

Starts a local echo listener on a port, probes a list of hosts on the same
port and reports one line per host.
"""

from .config import Config, Protocol
from .errors import ConfigurationError, ListenerBindError, PortTesterError
from .listener import TcpListener, UdpListener, new_listener
from .probe import ErrorKind, ProbeResult, ProbeTarget, probe_all, probe_target
from .runner import LifecycleState, PortTester, run

__version__ = "1.0.0"

__all__ = [
    "Config",
    "ConfigurationError",
    "ErrorKind",
    "LifecycleState",
    "ListenerBindError",
    "PortTester",
    "PortTesterError",
    "ProbeResult",
    "ProbeTarget",
    "Protocol",
    "TcpListener",
    "UdpListener",
    "new_listener",
    "probe_all",
    "probe_target",
    "run",
]
