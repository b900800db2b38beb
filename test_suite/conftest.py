import socket
import threading

import pytest

from port_tester.listener import TcpListener, UdpListener
from .utils import occupy_port


@pytest.fixture
def tcp_listener():
    listener = TcpListener('127.0.0.1', 0)
    listener.start()
    assert listener.wait_ready()
    yield listener
    listener.stop()


@pytest.fixture
def udp_listener():
    listener = UdpListener('127.0.0.1', 0)
    listener.start()
    assert listener.wait_ready()
    yield listener
    listener.stop()


@pytest.fixture
def silent_tcp_server():
    """
    A listening socket that never accepts. The kernel completes the handshake
    from the backlog, so clients connect fine but never get a reply.
    Yields the port.
    """
    sock, port = occupy_port("tcp")
    yield port
    sock.close()


@pytest.fixture
def closing_tcp_server():
    """Accepts every connection and closes it straight away. Yields the port."""
    sock, port = occupy_port("tcp")
    stop = threading.Event()

    def serve():
        sock.settimeout(0.2)
        while not stop.is_set():
            try:
                conn, _ = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.close()

    t = threading.Thread(target=serve)
    t.daemon = True
    t.start()
    yield port
    stop.set()
    t.join(timeout=2)
    sock.close()
