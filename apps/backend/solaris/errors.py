from __future__ import annotations


class SolarisError(Exception):
    pass


class ConnectivityError(SolarisError):
    """Device unreachable or timed out. Only affects the ``connected`` flag during polling."""


class RejectedCommandError(SolarisError):
    """Device was reachable but answered a command with a negative acknowledgment."""


class DeviceProtocolError(SolarisError):
    """Device answered with a payload that could not be parsed or reported not-ok."""


class RemoteStoreError(SolarisError):
    pass


class AuthError(SolarisError):
    pass


class ProvisioningError(SolarisError):
    pass


class NoDeviceBoundError(SolarisError):
    pass
