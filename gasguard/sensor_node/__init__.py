"""Sensing node service."""

from .interlock import RelayInterlock
from .node import SensingNode
from .thresholds import Thresholds, classify


def main():
    """Entry point for the sensing node."""
    import asyncio
    import signal

    from .config import load_config
    from .outputs import create_output
    from .sources import create_source
    from gasguard.shared.logging import setup_logging
    from gasguard.shared.transport import PahoTransport

    config = load_config()
    setup_logging(config.log_level, node_name=config.node_id, log_file=config.log_file)

    node = SensingNode(
        config,
        transport=PahoTransport(config.mqtt),
        source=create_source(config.sensor),
        output=create_output(config.relay),
    )

    async def _run():
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, node.stop)
        await node.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


__all__ = ["RelayInterlock", "SensingNode", "Thresholds", "classify", "main"]
