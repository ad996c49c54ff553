import asyncio
import logging

from domain.cache import LocalCache
from domain.errors import GatewayError, LastError, ScalerError
from domain.gateway import ServiceGateway
from domain.loader import UserDataLoader
from domain.models import Session, User
from domain.scaling import ScalingOrchestrator
from domain.session import SessionProvider


logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        *,
        gateway: ServiceGateway,
        provider: SessionProvider,
        loader: UserDataLoader,
        cache: LocalCache,
        orchestrator: ScalingOrchestrator,
        register_settle_delay: float = 2.0,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.loader = loader
        self.cache = cache
        self.orchestrator = orchestrator
        self.register_settle_delay = register_settle_delay
        self.user: User | None = None
        self.error = LastError()

    @property
    def authenticated(self) -> bool:
        return self.user is not None and self.provider.session_id is not None

    async def login(self, username: str, password: str) -> User:
        with self.error.track():
            user_id, session_id = await self.gateway.login(username, password)
            self.provider.start(
                Session(session_id=session_id, user_id=user_id, username=username),
                persist=False,
            )
            user = await self.loader.run(username, user_id)
            self.provider.start(
                Session(session_id=session_id, user_id=user.id, username=user.username)
            )
            self.user = user
            logger.info(f"Logged in as {user.username}")
            return user

    async def register(self, username: str, password: str) -> User:
        with self.error.track():
            await self.gateway.register(username, password)
        # The new user is not always readable straight away.
        if self.register_settle_delay > 0:
            await asyncio.sleep(self.register_settle_delay)
        return await self.login(username, password)

    async def logout(self) -> None:
        # Pending reconciliation would write this user's tips into the cleared cache.
        await self.orchestrator.cancel()
        session_id = self.provider.session_id
        try:
            if session_id:
                await self.gateway.logout(session_id)
        except ScalerError as e:
            logger.warning(f"Logout failed, clearing the session anyway: {e}")
        finally:
            self.provider.clear()
            self.cache.clear()
            self.user = None
            self.error.clear()
        logger.info("Logged out")

    async def restore_session(self) -> bool:
        stored = self.provider.stored()
        if stored is None:
            logger.info("No stored session.")
            return False

        try:
            sessions = await self.gateway.get_active_session(stored.session_id)
        except GatewayError as e:
            # Possibly transient; keep the stored session.
            logger.warning(f"Could not check stored session, keeping it: {e}")
        else:
            if not sessions or sessions[0].is_expired():
                logger.info("Stored session is missing or expired.")
                self.provider.clear()
                return False
            stored.expiration_time = sessions[0].expiration_time
            stored.username = await self._current_username(stored)

        self.provider.start(stored, persist=False)
        self.user = await self.loader.run(stored.username, stored.user_id)
        logger.info(f"Restored session for {self.user.username}")
        return True

    async def _current_username(self, session: Session) -> str:
        try:
            users = await self.gateway.get_user_by_id(session.user_id)
        except GatewayError as e:
            logger.warning(f"Could not refresh user {session.user_id}: {e}")
            return session.username
        return users[0].username if users else session.username
