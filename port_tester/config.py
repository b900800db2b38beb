from dataclasses import dataclass, field
from enum import Enum

from .errors import ConfigurationError

DEFAULT_TIMEOUT = 30   # seconds to wait for a dial and for the reply
DEFAULT_DELAY = 15     # seconds between listener start and the first probe
DEFAULT_SLEEP = 30     # seconds to keep the listener up after the probes


class Protocol(Enum):
    """Transport used by both the listener and the probes."""
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def from_name(cls, name):
        """Parse a protocol name, case-insensitive."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Invalid protocol given: {name!r} (expected tcp or udp)") from None


@dataclass
class Config:
    port: int = 0
    targets: list = field(default_factory=list)
    protocol: Protocol = Protocol.TCP
    bind_address: str = ""          # empty string binds all interfaces
    timeout: float = DEFAULT_TIMEOUT
    delay: float = DEFAULT_DELAY
    sleep: float = DEFAULT_SLEEP
    no_listen: bool = False

    def __post_init__(self):
        self.protocol = Protocol.from_name(self.protocol)
        self.targets = list(self.targets)

    def validate(self):
        """
        Check the record before anything touches the network.
        Raises ConfigurationError on the first problem found.
        """
        if not self.port:
            raise ConfigurationError("Please specify port")
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port}")
        if not self.targets:
            raise ConfigurationError("Please specify at least one IP to check")
        if any(not str(t).strip() for t in self.targets):
            raise ConfigurationError("Empty target in target list")
        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        if self.delay < 0:
            raise ConfigurationError(f"Delay must not be negative, got {self.delay}")
        if self.sleep < 0:
            raise ConfigurationError(f"Sleep must not be negative, got {self.sleep}")
        return self

    @property
    def listen(self):
        return not self.no_listen
