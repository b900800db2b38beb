"""
Tests for single probes and the concurrent probe orchestrator.
"""
import time

import pytest

from port_tester.config import Protocol
from port_tester.listener import REPLY_LABEL
from port_tester.probe import (
    PROBE_TOKEN, ErrorKind, ProbeResult, ProbeTarget, make_targets, probe_all, probe_target,
)
from .utils import NON_ROUTABLE_HOST, NON_ROUTABLE_PORT, get_free_port, is_non_routable

ECHO_LENGTH = len(REPLY_LABEL + PROBE_TOKEN)


def test_target_and_result_format():
    target = ProbeTarget("127.0.0.1", 9000)
    assert str(target) == "127.0.0.1:9000"
    assert str(ProbeTarget("::1", 9000)) == "[::1]:9000"

    ok = ProbeResult.success(target, 23)
    assert ok.ok
    assert ok.format() == "127.0.0.1:9000: OK 23"

    failed = ProbeResult.failure(target, ErrorKind.DIAL, "dial tcp 127.0.0.1:9000: Connection refused")
    assert not failed.ok
    assert failed.format() == "127.0.0.1:9000: Error dial tcp 127.0.0.1:9000: Connection refused"


def test_make_targets():
    assert make_targets([" 10.0.0.1", "host.example"], "80") == [
        ProbeTarget("10.0.0.1", 80),
        ProbeTarget("host.example", 80),
    ]


def test_probe_tcp_success(tcp_listener):
    result = probe_target(ProbeTarget("127.0.0.1", tcp_listener.actual_port), Protocol.TCP, timeout=2)
    assert result.ok, result.error
    assert result.bytes_received == ECHO_LENGTH


def test_probe_udp_success(udp_listener):
    result = probe_target(ProbeTarget("127.0.0.1", udp_listener.actual_port), "udp", timeout=2)
    assert result.ok, result.error
    assert result.bytes_received == ECHO_LENGTH


def test_probe_refused():
    port = get_free_port()
    result = probe_target(ProbeTarget("127.0.0.1", port), Protocol.TCP, timeout=2)
    assert not result.ok
    assert result.error_kind is ErrorKind.DIAL
    assert result.bytes_received is None
    assert result.format().startswith(f"127.0.0.1:{port}: Error dial tcp")


def test_probe_udp_nothing_listening():
    """With no listener the single UDP exchange fails (refused or timed out), no retry."""
    port = get_free_port("udp")
    result = probe_target(ProbeTarget("127.0.0.1", port), Protocol.UDP, timeout=1)
    assert not result.ok
    assert result.error_kind in (ErrorKind.READ, ErrorKind.TIMEOUT)


def test_probe_malformed_host():
    result = probe_target(ProbeTarget("bad..host", 80), Protocol.TCP, timeout=1)
    assert not result.ok
    assert result.error_kind is ErrorKind.DIAL


def test_probe_reply_timeout(silent_tcp_server):
    start = time.monotonic()
    result = probe_target(ProbeTarget("127.0.0.1", silent_tcp_server), Protocol.TCP, timeout=0.5)
    elapsed = time.monotonic() - start

    assert result.error_kind is ErrorKind.TIMEOUT
    assert "read tcp" in result.error
    assert elapsed < 3


def test_probe_peer_closes(closing_tcp_server):
    result = probe_target(ProbeTarget("127.0.0.1", closing_tcp_server), Protocol.TCP, timeout=2)
    assert result.error_kind is ErrorKind.READ


@pytest.mark.slow
def test_probe_dial_timeout():
    if not is_non_routable(NON_ROUTABLE_HOST, NON_ROUTABLE_PORT, probe_timeout=2):
        pytest.skip(f"{NON_ROUTABLE_HOST} is reachable on this system (not silently dropped)")

    start = time.monotonic()
    result = probe_target(ProbeTarget(NON_ROUTABLE_HOST, NON_ROUTABLE_PORT), Protocol.TCP, timeout=1)
    elapsed = time.monotonic() - start

    assert result.error_kind is ErrorKind.TIMEOUT
    assert result.error.startswith("dial tcp")
    assert elapsed < 4


def test_probe_all_no_targets():
    calls = []
    assert probe_all([], Protocol.TCP, timeout=1, sink=calls.append) == []
    assert calls == []


def test_probe_all_single_target(tcp_listener):
    calls = []
    target = ProbeTarget("127.0.0.1", tcp_listener.actual_port)
    results = probe_all([target], Protocol.TCP, timeout=2, sink=calls.append)
    assert results == calls
    assert len(results) == 1
    assert results[0].target == target
    assert results[0].ok


def test_probe_all_one_result_per_target(tcp_listener):
    """Mixed good and bad targets: every target produces exactly one result, in input order."""
    good = ProbeTarget("127.0.0.1", tcp_listener.actual_port)
    bad = ProbeTarget("127.0.0.1", get_free_port())
    targets = [good, bad, good, bad, good]
    calls = []

    results = probe_all(targets, Protocol.TCP, timeout=2, sink=calls.append)

    assert [r.target for r in results] == targets
    assert [r.ok for r in results] == [True, False, True, False, True]
    assert len(calls) == len(targets)
    assert sorted(calls, key=id) == sorted(results, key=id)


def test_slow_target_does_not_delay_others(tcp_listener, silent_tcp_server):
    slow = ProbeTarget("127.0.0.1", silent_tcp_server)
    fast = ProbeTarget("127.0.0.1", tcp_listener.actual_port)
    seen = []
    start = time.monotonic()

    results = probe_all([slow, fast], Protocol.TCP, timeout=2,
                        sink=lambda r: seen.append((r.target, time.monotonic() - start)))

    assert seen[0][0] == fast
    assert seen[0][1] < 1.5
    assert seen[1][0] == slow
    assert results[0].error_kind is ErrorKind.TIMEOUT
    assert results[1].ok
