"""Relay interlock: local safety always outranks remote commands."""

import logging
from typing import Optional

from gasguard.shared.exceptions import MalformedMessageError, RejectedCommandError
from gasguard.shared.models import (
    AlertLevel,
    CommandOrigin,
    RelayCommand,
    RelayState,
    RelayTransition,
)

logger = logging.getLogger(__name__)


class RelayInterlock:
    """Holds the one authoritative RelayState of the sensing node.

    A CRITICAL classification forces the relay OFF and latches. While
    latched, remote ON is refused. The latch clears on the next
    non-CRITICAL classification, but the relay stays OFF until someone
    explicitly asks for ON.
    """

    def __init__(self, initial: RelayState = RelayState.OFF):
        self.state = initial
        self.latched = False
        self.origin: Optional[CommandOrigin] = None
        self.rejected_count = 0

    def on_local_classification(self, level: AlertLevel) -> Optional[RelayTransition]:
        """Apply the local safety rule for one classification.

        Returns:
            The transition when the relay was forced OFF, None otherwise
            (including repeated CRITICAL while already OFF).
        """
        if level == AlertLevel.CRITICAL:
            if not self.latched:
                logger.warning("CRITICAL classification, latching relay OFF")
            self.latched = True
            if self.state == RelayState.OFF:
                self.origin = CommandOrigin.LOCAL_SAFETY
                return None
            return self._write(RelayState.OFF, CommandOrigin.LOCAL_SAFETY)

        if self.latched:
            logger.info(f"Classification back to {level.name}, clearing latch (relay stays {self.state.value})")
            self.latched = False
        return None

    def on_remote_command(self, command: RelayCommand) -> RelayTransition:
        """Apply a command from the supervisory node.

        Raises:
            RejectedCommandError: Remote ON while latched.
            MalformedMessageError: Action is not a RelayState.
        """
        if not isinstance(command.action, RelayState):
            raise MalformedMessageError(f"Unrecognized relay action: {command.action!r}")

        if self.latched and command.action == RelayState.ON:
            self.rejected_count += 1
            raise RejectedCommandError("Remote RELAY_ON refused while safety latch is set")

        return self._write(command.action, CommandOrigin.REMOTE)

    def _write(self, action: RelayState, origin: CommandOrigin) -> RelayTransition:
        transition = RelayTransition(previous=self.state, current=action, origin=origin)
        if transition.changed:
            logger.info(f"Relay {self.state.value} -> {action.value} ({origin.value})")
            self.state = action
            self.origin = origin
        return transition
