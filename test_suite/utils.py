import select
import socket


# RFC 5737 TEST-NET-1: guaranteed non-routable, SYN packets silently dropped.
# This makes connect() hang until timeout rather than getting immediate ECONNREFUSED.
NON_ROUTABLE_HOST = "192.0.2.1"
NON_ROUTABLE_PORT = 9999


def get_free_port(protocol="tcp"):
    """
    Get a free port on localhost.
    Note: There's an inherent race condition between this function returning
    and the caller binding to the port. We use SO_REUSEADDR to mitigate this.
    """
    kind = socket.SOCK_DGRAM if protocol == "udp" else socket.SOCK_STREAM
    with socket.socket(socket.AF_INET, kind) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def port_is_free(port, protocol="tcp", host='127.0.0.1'):
    """True if ``port`` can be bound again right now."""
    kind = socket.SOCK_DGRAM if protocol == "udp" else socket.SOCK_STREAM
    with socket.socket(socket.AF_INET, kind) as s:
        if kind == socket.SOCK_STREAM:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
        except OSError:
            return False
        return True


def occupy_port(protocol="tcp", host='127.0.0.1'):
    """Bind (and for TCP, listen on) a random port. Caller closes the socket."""
    if protocol == "udp":
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.bind((host, 0))
    else:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.bind((host, 0))
        s.listen(1)
    return s, s.getsockname()[1]


def recv_line(sock, limit=65536):
    """Receive up to and including the next newline (or until the peer closes)."""
    data = b""
    while not data.endswith(b"\n") and len(data) < limit:
        chunk = sock.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def recv_until_close(sock):
    """Receive data until the other end closes the connection."""
    chunks = []
    while True:
        try:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        except socket.timeout:
            break
        except OSError:
            break
    return b''.join(chunks)


def is_non_routable(host, port, probe_timeout=3):
    """Verify that connecting to host:port hangs (no response) rather than
    getting an immediate error. Returns True if the address is truly non-routable."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.setblocking(False)
    try:
        s.connect_ex((host, int(port)))
    except OSError:
        s.close()
        return False

    # Wait briefly - if we get a response (ECONNREFUSED, etc.) it's not non-routable
    readable, writable, exceptional = select.select([], [s], [s], probe_timeout)
    s.close()

    # If socket became writable/exceptional within probe_timeout, the host is reachable
    # (or actively rejecting). We need it to remain silent.
    return len(writable) == 0 and len(exceptional) == 0
