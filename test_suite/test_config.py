"""
Tests for the configuration record and its validation.
"""
import pytest

from port_tester.config import DEFAULT_DELAY, DEFAULT_SLEEP, DEFAULT_TIMEOUT, Config, Protocol
from port_tester.errors import ConfigurationError


def test_defaults():
    config = Config(port=9000, targets=("10.0.0.1",))
    assert config.protocol is Protocol.TCP
    assert config.bind_address == ""
    assert config.timeout == DEFAULT_TIMEOUT == 30
    assert config.delay == DEFAULT_DELAY == 15
    assert config.sleep == DEFAULT_SLEEP == 30
    assert config.no_listen is False
    assert config.listen is True
    assert config.targets == ["10.0.0.1"]
    assert config.validate() is config


@pytest.mark.parametrize("name, expected", [
    ("tcp", Protocol.TCP),
    ("TCP", Protocol.TCP),
    (" Udp ", Protocol.UDP),
    (Protocol.UDP, Protocol.UDP),
])
def test_protocol_names(name, expected):
    assert Protocol.from_name(name) is expected
    assert Config(port=1, targets=["x"], protocol=name).protocol is expected


def test_invalid_protocol():
    with pytest.raises(ConfigurationError, match="Invalid protocol"):
        Config(port=9000, targets=["10.0.0.1"], protocol="icmp")


@pytest.mark.parametrize("kwargs, message", [
    (dict(port=0), "specify port"),
    (dict(port=70000), "between 1 and 65535"),
    (dict(port=-1), "between 1 and 65535"),
    (dict(targets=[]), "at least one IP"),
    (dict(targets=["10.0.0.1", "  "]), "Empty target"),
    (dict(timeout=0), "Timeout"),
    (dict(delay=-1), "Delay"),
    (dict(sleep=-0.5), "Sleep"),
])
def test_validation_errors(kwargs, message):
    params = dict(port=9000, targets=["10.0.0.1"])
    params.update(kwargs)
    with pytest.raises(ConfigurationError, match=message):
        Config(**params).validate()


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        Config().validate()
