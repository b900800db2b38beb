"""Exceptions raised by port_tester."""


class PortTesterError(Exception):
    """Base class for all port_tester errors."""


class ConfigurationError(PortTesterError, ValueError):
    """Invalid or missing configuration. Raised before any network activity."""


class ListenerBindError(PortTesterError, OSError):
    """The local listener could not bind its address."""
