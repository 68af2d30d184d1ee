"""Gas and climate hazard interlock over MQTT."""

__version__ = "0.1.0"
