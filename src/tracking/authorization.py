"""Location authorization gate."""

from typing import Callable, Protocol

import structlog

from shared_types import AuthorizationState

from .errors import PermissionDeniedError

logger = structlog.get_logger().bind(source="authorization")

# No further automatic requests from these states.
TERMINAL_STATES = {AuthorizationState.DENIED, AuthorizationState.RESTRICTED}


class PermissionProvider(Protocol):
    """Host side of the permission boundary."""

    def current_state(self) -> AuthorizationState: ...

    def request_upgrade(self) -> None: ...


class AuthorizationGate:
    """Gates background sampling on 'always' authorization.

    State changes arrive as notifications via ``on_authorization_changed``;
    ``check`` re-reads the provider right before every fix request because the
    grant can change between scheduling and execution.
    """

    def __init__(self, provider: PermissionProvider):
        self.provider = provider
        self._listeners: list[Callable[[AuthorizationState], None]] = []
        self._last_seen: AuthorizationState | None = None

    @staticmethod
    def is_sampling_permitted(state: AuthorizationState) -> bool:
        return state == AuthorizationState.ALWAYS

    def add_listener(self, listener: Callable[[AuthorizationState], None]) -> None:
        self._listeners.append(listener)

    def check(self) -> AuthorizationState:
        """Read the current state from the provider."""
        state = AuthorizationState(self.provider.current_state())
        self._last_seen = state
        return state

    def ensure_permitted(self) -> AuthorizationState:
        """Return the current state or raise if sampling is not allowed."""
        state = self.check()
        if not self.is_sampling_permitted(state):
            raise PermissionDeniedError(state)
        return state

    def request_always_authorization(self) -> AuthorizationState:
        """Apply the upgrade policy for the current state."""
        state = self.check()
        self._apply_policy(state)
        return state

    def on_authorization_changed(self, state: AuthorizationState) -> None:
        """Host notification: permission state changed."""
        state = AuthorizationState(state)
        previous = self._last_seen
        self._last_seen = state
        logger.info("authorization_changed", previous=previous, state=state)
        self._apply_policy(state)
        for listener in self._listeners:
            try:
                listener(state)
            except Exception as e:
                logger.error("authorization_listener_failed", error=str(e))

    def _apply_policy(self, state: AuthorizationState) -> None:
        if state in (AuthorizationState.UNDETERMINED, AuthorizationState.WHEN_IN_USE):
            logger.info("authorization_upgrade_requested", state=state)
            self.provider.request_upgrade()
        elif state == AuthorizationState.ALWAYS:
            logger.debug("authorization_always")
        elif state in TERMINAL_STATES:
            logger.warning("authorization_denied", state=state)
