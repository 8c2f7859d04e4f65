"""
Auth Session

Owns the process-wide authenticated state: the access token and the user
it belongs to. Everything else only reads it or subscribes to changes;
signing in and out happens here and nowhere else.

"No token" is a normal state (read-only mode), not an error.
"""

import logging
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from genet_registry.registry.models import RegistryError
from genet_registry.storage.factory import GatewayBackend, GatewaySettings
from genet_registry.storage.github import GitHubSyncGateway

logger = logging.getLogger(__name__)


class User(BaseModel):
    """The signed-in maintainer."""
    login: str = Field(..., description="Account login")
    display_name: str = Field(..., description="Display name (falls back to login)")
    avatar_url: str | None = Field(default=None, description="Avatar image URL")


class UnauthenticatedError(RegistryError):
    """The operation needs a token and none is present."""

    def __init__(self, message: str = "You must be logged in to save."):
        super().__init__(message)


TokenVerifier = Callable[[str], Awaitable[User]]
AuthListener = Callable[[str | None, User | None], None]


class AuthSession:
    """
    Token and user for the running process.

    Listeners are called synchronously with (token, user) after every change.
    """

    def __init__(self, verifier: TokenVerifier):
        self._verifier = verifier
        self._token: str | None = None
        self._user: User | None = None
        self._listeners: list[AuthListener] = []

    def current_token(self) -> str | None:
        return self._token

    def current_user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, token: str) -> User | None:
        """
        Verify a token and make it current.

        An invalid token signs the session out instead.
        """
        try:
            user = await self._verifier(token)
        except Exception as e:
            logger.warning(f"Invalid token: {e}")
            self.sign_out()
            return None

        self._token = token
        self._user = user
        logger.info(f"Signed in as {user.login}")
        self._notify()
        return user

    def sign_out(self) -> None:
        changed = self._token is not None or self._user is not None
        self._token = None
        self._user = None
        if changed:
            logger.info("Signed out")
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._token, self._user)
            except Exception as e:
                logger.error(f"Auth listener failed: {e}")


def create_token_verifier(settings: GatewaySettings) -> TokenVerifier:
    """
    Token verifier matching the configured backend.

    The GitHub backend asks GitHub who owns the token; the memory backend
    accepts any non-empty token as a local user.
    """
    if settings.backend == GatewayBackend.MEMORY:
        async def verify_local(token: str) -> User:
            if not token:
                raise ValueError("empty token")
            return User(login="local", display_name="Local maintainer")

        return verify_local

    async def verify_github(token: str) -> User:
        gateway = GitHubSyncGateway(
            token=token,
            owner=settings.owner or "",
            repo=settings.repo or "",
            branch=settings.branch,
            api_url=settings.api_url,
            timeout=settings.http_timeout,
        )
        try:
            data = await gateway.get_authenticated_user()
        finally:
            await gateway.close()
        return User(
            login=data["login"],
            display_name=data.get("name") or data["login"],
            avatar_url=data.get("avatar_url"),
        )

    return verify_github
