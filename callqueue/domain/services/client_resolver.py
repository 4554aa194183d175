"""
Client Resolver
Maps caller numbers to shared clients, provisioning unknown callers.

The directory is loaded once per scan pass into a normalized-phone map so
that a pass issues a single full-table read plus one lookup per unknown
caller.
"""
import logging
from typing import Dict, Optional

from callqueue.domain.models.client import Client
from callqueue.domain.services.phone_normalizer import normalize_phone
from callqueue.infrastructure.storage.supabase_repository import StoreError

logger = logging.getLogger(__name__)


class ClientDirectoryError(Exception):
    """Raised when the client directory cannot be loaded."""
    def __init__(self, message: str = "Client directory could not be loaded."):
        self.message = message
        super().__init__(self.message)


class ClientResolver:
    """
    Per-pass client lookup with auto-provisioning.

    Usage:
        resolver = ClientResolver(client_repository)
        await resolver.load()
        client = await resolver.resolve(normalize_phone(raw), raw)
    """

    def __init__(self, client_repository):
        self.clients = client_repository
        self._by_phone: Dict[str, Client] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def known_count(self) -> int:
        return len(self._by_phone)

    async def load(self) -> None:
        """
        Read the full client directory into the lookup map.

        Raises:
            ClientDirectoryError: if the directory cannot be read
        """
        try:
            clients = await self.clients.list_all()
        except StoreError as e:
            raise ClientDirectoryError(e.message) from e

        self._by_phone = {}
        for client in clients:
            key = normalize_phone(client.phone)
            if key and key not in self._by_phone:
                self._by_phone[key] = client
        self._loaded = True

        logger.info(f"Loaded {len(self._by_phone)} clients for lookup")

    async def resolve(self, normalized: str, raw: Optional[str] = None) -> Optional[Client]:
        """
        Find or create the client for a caller.

        Args:
            normalized: Normalized caller number
            raw: Number as reported by the provider, for logs

        Returns:
            The client, or None if provisioning failed (the caller then
            records the call keyed by phone only)
        """
        if not normalized:
            return None

        client = self._by_phone.get(normalized)
        if client:
            return client

        try:
            client = await self.clients.find_by_phone(normalized)
            if client is None:
                client = await self.clients.create(phone=normalized)
                logger.info(f"Auto-created client {client.id} for {raw or normalized}")
        except StoreError as e:
            logger.error(f"Failed to provision client for {raw or normalized}: {e.message}")
            return None

        self._by_phone[normalized] = client
        return client
