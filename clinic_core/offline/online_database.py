# =============================================================================
# clinic_core/offline/online_database.py
# Supabase (online) store used as the sync target
# =============================================================================
"""
OnlineDatabase - async Supabase adapter the sync engine upserts into.

The Supabase async client is created lazily and recreated when it is used
from a different event loop (the Streamlit surface runs each sync in its
own ``asyncio.run``).
"""

from __future__ import annotations
import asyncio
from typing import Any, Dict, Optional
import logging

import httpx
from supabase import AsyncClient, acreate_client

from clinic_core.errors.exceptions import StoreError

logger = logging.getLogger(__name__)


class OnlineDatabase:
    """
    Target-store collaborator backed by Supabase.

    Usage:
        online = OnlineDatabase(url, key)
        await online.probe()
        await online.upsert("product_online", "id", {"id": "p1", ...})
    """

    REST_PATH = "/rest/v1/"

    def __init__(
        self,
        url: Optional[str],
        key: Optional[str],
        probe_timeout: float = 5.0,
        client: Optional[AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            url: Supabase project URL
            key: Supabase API key (service role key for writes)
            probe_timeout: Seconds before a reachability check gives up
            client: Pre-built async client (skips lazy creation)
            transport: httpx transport for the reachability check
        """
        self.url = url.rstrip("/") if url else None
        self.key = key
        self.probe_timeout = probe_timeout
        self._client = client
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None
        self._injected_client = client is not None
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.key)

    def _require_credentials(self) -> None:
        if not self.is_configured:
            raise StoreError("Supabase credentials not configured", store="online")

    async def _get_client(self) -> AsyncClient:
        """Lazy load the Supabase async client for the running loop."""
        if self._injected_client:
            return self._client

        loop = asyncio.get_running_loop()
        if self._client is None or self._client_loop is not loop:
            self._require_credentials()
            self._client = await acreate_client(self.url, self.key)
            self._client_loop = loop
            logger.debug("Created Supabase async client")
        return self._client

    async def probe(self) -> None:
        """
        Entity-independent reachability check against the REST root.

        Raises:
            StoreError: credentials missing
            httpx.HTTPError: endpoint unreachable or rejecting the key
        """
        self._require_credentials()
        headers = {"apikey": self.key, "Authorization": f"Bearer {self.key}"}

        async with httpx.AsyncClient(
            timeout=self.probe_timeout,
            transport=self._transport,
        ) as http:
            response = await http.get(f"{self.url}{self.REST_PATH}", headers=headers)
            response.raise_for_status()

    async def upsert(
        self,
        table: str,
        key_field: str,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create the row if its natural key is absent, else update it.

        Returns:
            The stored row as returned by Supabase (payload if none returned)
        """
        client = await self._get_client()
        response = await (
            client.table(table)
            .upsert(payload, on_conflict=key_field)
            .execute()
        )
        if response.data:
            return response.data[0]
        return payload
