"""Cart session management, one cart per buyer"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from ..errors import CartError, CartNotFoundError
from ..services.engine import CartEngine
from ..services.gateway import CartGateway
from ..services.sync import CartSynchronizer
from .config import Settings

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[str], CartGateway]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CartSession:
    """A buyer's cart engine and its synchronizer"""
    buyer_id: str
    engine: CartEngine
    synchronizer: Optional[CartSynchronizer] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def touch(self) -> None:
        self.updated_at = _now()


class CartSessionManager:
    """Owns the cart sessions of all buyers; carts are never shared"""

    def __init__(
        self,
        settings: Settings,
        gateway_factory: Optional[GatewayFactory] = None,
    ):
        self.settings = settings
        self.gateway_factory = gateway_factory
        self.sessions: dict[str, CartSession] = {}

    def create_session(self, buyer_id: str) -> CartSession:
        """Create an empty cart for a buyer"""
        engine = CartEngine(buyer_id=buyer_id, policy=self.settings.build_pricing_policy())

        synchronizer = None
        if self.gateway_factory is not None:
            synchronizer = CartSynchronizer(
                engine,
                self.gateway_factory(buyer_id),
                retry_base_delay=self.settings.sync_retry_base_delay,
                retry_max_delay=self.settings.sync_retry_max_delay,
                max_attempts=self.settings.sync_max_attempts,
            )

        session = CartSession(buyer_id=buyer_id, engine=engine, synchronizer=synchronizer)
        self.sessions[buyer_id] = session
        logger.info(f"Created cart {engine.cart_id} for buyer {buyer_id}")
        return session

    def get_session(self, buyer_id: str) -> Optional[CartSession]:
        """Get session by buyer ID"""
        return self.sessions.get(buyer_id)

    def require_session(self, buyer_id: str) -> CartSession:
        """Get session by buyer ID, failing when the buyer has no cart"""
        session = self.sessions.get(buyer_id)
        if session is None:
            raise CartNotFoundError(buyer_id)
        return session

    async def open_session(self, buyer_id: str) -> CartSession:
        """
        Get or create a buyer's session.

        A new session starts from the server copy when a gateway is
        configured; if the server is unreachable the cart starts empty and
        local edits are persisted once it recovers.
        """
        session = self.sessions.get(buyer_id)
        if session is not None:
            session.touch()
            return session

        session = self.create_session(buyer_id)
        if session.synchronizer is not None:
            try:
                await session.synchronizer.load()
            except (CartError, ValidationError) as e:
                logger.warning(f"Could not load server cart for buyer {buyer_id}, starting empty: {e}")
        return session

    async def close_session(self, buyer_id: str) -> bool:
        """Flush pending operations and drop a session"""
        session = self.sessions.pop(buyer_id, None)
        if session is None:
            return False
        if session.synchronizer is not None:
            await session.synchronizer.close()
            await session.synchronizer.gateway.close()
        return True

    async def cleanup_old_sessions(self, max_age_hours: Optional[int] = None) -> int:
        """Close sessions idle for longer than max_age_hours"""
        max_age_hours = max_age_hours if max_age_hours is not None else self.settings.session_max_age_hours
        now = _now()
        old_sessions = [
            buyer_id for buyer_id, session in self.sessions.items()
            if (now - session.updated_at).total_seconds() > max_age_hours * 3600
        ]
        for buyer_id in old_sessions:
            await self.close_session(buyer_id)
        return len(old_sessions)

    async def close(self) -> None:
        """Flush and close every session"""
        for buyer_id in list(self.sessions):
            await self.close_session(buyer_id)
