import logging
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from budgetbuddy.domain import SessionUser
from budgetbuddy.errors import AuthError
from budgetbuddy.functional import Maybe

__all__ = ['SIGNED_IN', 'SIGNED_OUT', 'TOKEN_REFRESHED', 'AuthEvent', 'SessionContext']

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"


class AuthEvent(NamedTuple):
    name: str
    ts: str
    user: Optional[SessionUser]


Handler = Callable[[AuthEvent], None]


class SessionContext:
    """The signed-in user for one app session.

    Passed explicitly to everything that needs an owner id; listeners are
    told about sign-in, sign-out and refresh.
    """

    def __init__(self, user: Optional[SessionUser] = None):
        self._user = user
        self._subscribers: List[Handler] = []

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    def current(self) -> Maybe[SessionUser]:
        return Maybe.of(self._user)

    @property
    def owner_id(self) -> str:
        if self._user is None:
            raise AuthError("Not signed in")
        return self._user.user_id

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        self._subscribers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def _publish(self, name: str) -> AuthEvent:
        event = AuthEvent(name=name, ts=datetime.now().isoformat(), user=self._user)
        for handler in list(self._subscribers):
            handler(event)
        return event

    def sign_in(self, user: SessionUser) -> AuthEvent:
        self._user = user
        logger.info("Signed in as %s", user.user_id)
        return self._publish(SIGNED_IN)

    def sign_out(self) -> AuthEvent:
        self._user = None
        logger.info("Signed out")
        return self._publish(SIGNED_OUT)

    def refresh(self, user: SessionUser) -> AuthEvent:
        self._user = user
        return self._publish(TOKEN_REFRESHED)
