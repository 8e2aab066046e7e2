"""Authentication against the Supabase auth provider."""

import asyncio
import logging
from typing import Any, Callable

from supabase import Client

from ..errors import AuthError
from ..models import AuthSession, UserProfile

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

SessionListener = Callable[[str, UserProfile | None], None]


def _reason(error: Exception) -> str:
    return getattr(error, "message", None) or str(error) or error.__class__.__name__


def _to_profile(user: Any) -> UserProfile:
    metadata = getattr(user, "user_metadata", None) or {}
    return UserProfile(
        id=str(user.id),
        email=getattr(user, "email", None),
        display_name=metadata.get("display_name") or metadata.get("full_name"),
    )


class AuthService:
    """Sign-up, login, logout and token lookup.

    Listeners registered with `subscribe` are told about every sign-in and
    sign-out that goes through this service.
    """

    def __init__(self, client: Client, admin_client: Client | None = None):
        self.client = client
        self.admin_client = admin_client
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a session-change listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, user: UserProfile | None) -> None:
        for listener in list(self._listeners):
            listener(event, user)

    async def signup(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        credentials: dict[str, Any] = {"email": email, "password": password}
        if display_name:
            credentials["options"] = {"data": {"display_name": display_name}}

        try:
            response = await asyncio.to_thread(self.client.auth.sign_up, credentials)
        except Exception as e:
            raise AuthError(_reason(e)) from e
        if response.user is None:
            raise AuthError("Sign-up did not return a user")

        session = self._to_session(response)
        logger.info("Signed up user %s", session.user.id)
        self._notify(SIGNED_IN, session.user)
        return session

    async def login(self, email: str, password: str) -> AuthSession:
        try:
            response = await asyncio.to_thread(
                self.client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except Exception as e:
            raise AuthError(_reason(e)) from e
        if response.user is None or response.session is None:
            raise AuthError("Invalid login credentials")

        session = self._to_session(response)
        logger.info("User %s logged in", session.user.id)
        self._notify(SIGNED_IN, session.user)
        return session

    async def logout(self, access_token: str) -> None:
        """Revoke the session behind `access_token`."""
        user = await self.current_user(access_token)
        client = self.admin_client or self.client
        try:
            await asyncio.to_thread(client.auth.admin.sign_out, access_token)
        except Exception as e:
            raise AuthError(_reason(e)) from e

        logger.info("User %s logged out", user.id if user else "<unknown>")
        self._notify(SIGNED_OUT, None)

    async def current_user(self, access_token: str | None) -> UserProfile | None:
        """The user an access token belongs to, or None if it is missing/invalid."""
        if not access_token:
            return None
        try:
            response = await asyncio.to_thread(self.client.auth.get_user, access_token)
        except Exception as e:
            logger.warning("Rejected access token: %s", _reason(e))
            return None
        if response is None or response.user is None:
            return None
        return _to_profile(response.user)

    @staticmethod
    def _to_session(response: Any) -> AuthSession:
        session = response.session
        return AuthSession(
            user=_to_profile(response.user),
            access_token=session.access_token if session else None,
            refresh_token=session.refresh_token if session else None,
        )
