"""Supervisory node service."""

from .aggregator import StateAggregator
from .dispatcher import AlertDispatcher
from .node import SupervisorNode
from .observers import LoggingObserver, Observer


def main():
    """Entry point for the supervisory node."""
    import asyncio
    import signal

    from .config import build_observers, load_config
    from gasguard.shared.logging import setup_logging
    from gasguard.shared.transport import PahoTransport

    config = load_config()
    setup_logging(config.log_level, node_name=config.node_id, log_file=config.log_file)

    node = SupervisorNode(
        config,
        transport=PahoTransport(config.mqtt),
        observers=build_observers(config),
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


__all__ = [
    "AlertDispatcher",
    "LoggingObserver",
    "Observer",
    "StateAggregator",
    "SupervisorNode",
    "main",
]
