"""Error taxonomy shared by both nodes.

None of these terminate a node. Transport errors are retried, malformed
messages and rejected commands are logged and counted, and sensor read
errors surface as absent readings or a skipped cycle.
"""


class GasGuardError(Exception):
    """Base exception for gasguard."""

    pass


class ConfigError(GasGuardError):
    """Raised when a configuration file is missing a value or is inconsistent."""

    pass


class TransportError(GasGuardError):
    """Connection, subscribe or publish failure on the MQTT transport."""

    pass


class MalformedMessageError(GasGuardError):
    """Payload that fails schema validation or disagrees with its topic."""

    pass


class RejectedCommandError(GasGuardError):
    """Remote relay command refused by the interlock while latched."""

    pass


class SensorReadError(GasGuardError):
    """Sensor source could not produce a usable sample."""

    pass
