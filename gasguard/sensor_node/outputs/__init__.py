"""Relay output drivers."""

from .base import RelayOutput
from .simulated import SimulatedRelay

OUTPUT_TYPES = {
    "simulated": "gasguard.sensor_node.outputs.simulated.SimulatedRelay",
    "kasa": "gasguard.sensor_node.outputs.kasa.KasaRelay",
}


def create_output(config: dict) -> RelayOutput:
    """Build the relay driver named by config['driver'].

    Drivers are imported lazily so python-kasa is only loaded when used.
    """
    driver = config.get("driver", "simulated")
    if driver not in OUTPUT_TYPES:
        raise ValueError(f"Unsupported relay driver: {driver}")

    module_name, class_name = OUTPUT_TYPES[driver].rsplit(".", 1)
    output_class = getattr(__import__(module_name, fromlist=[class_name]), class_name)
    if driver == "simulated":
        return output_class()
    return output_class(config)


__all__ = [
    "RelayOutput",
    "SimulatedRelay",
    "create_output",
]
