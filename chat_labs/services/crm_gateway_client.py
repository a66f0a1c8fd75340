"""
CRM Gateway Client
==================

Client for the CRM natural-language query gateway.
"""

import asyncio
import json
import logging
import ssl
import certifi
import aiohttp
from typing import Any, Optional
from pydantic import BaseModel

from ..config import CrmConfig

logger = logging.getLogger(__name__)


class GatewayResponse(BaseModel):
    """Response from a gateway query."""
    success: bool
    data: Any = None
    status: Optional[int] = None
    error: Optional[str] = None


class CrmGatewayClient:
    """Client for the CRM query gateway API."""

    def __init__(self, config: CrmConfig):
        self.config = config
        self.base_url = config.gateway_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info(f"[CRM-GATEWAY] Initialized with timeout={config.timeout}, url={self.base_url}")

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            # Create SSL context using certifi for proper certificate verification
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                connector=connector
            )
        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def query(self, message: str, user_email: Optional[str] = None) -> GatewayResponse:
        """
        Run a natural-language query against the gateway.

        Args:
            message: The user's message, passed through unchanged
            user_email: Identity used by the gateway to scope results

        Returns:
            GatewayResponse with the parsed JSON on success
        """
        if not self.configured:
            return GatewayResponse(success=False, error="CRM gateway URL is not configured")

        params = {"q": message, "engine": self.config.engine, "mode": self.config.mode}
        headers = {"Accept": "application/json"}
        if user_email:
            headers["X-User-Email"] = user_email

        try:
            session = await self._get_session()
            async with session.get(self.base_url, params=params, headers=headers) as resp:
                body = await resp.read()
                if resp.status < 200 or resp.status >= 300:
                    snippet = body[:200].decode("utf-8", "replace")
                    logger.error(f"[CRM-GATEWAY] Query failed: {resp.status} - {snippet}")
                    return GatewayResponse(success=False, status=resp.status, error=f"HTTP {resp.status}")
                try:
                    data = json.loads(body)
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    logger.error(f"[CRM-GATEWAY] Invalid JSON from gateway: {e}")
                    return GatewayResponse(success=False, status=resp.status, error="invalid JSON response")
                records = data.get("records") if isinstance(data, dict) else None
                logger.info(
                    f"[CRM-GATEWAY] Query ok, records={len(records) if isinstance(records, list) else 'n/a'}"
                )
                return GatewayResponse(success=True, data=data, status=resp.status)
        except asyncio.TimeoutError:
            logger.error(f"[CRM-GATEWAY] Timeout after {self.config.timeout}s")
            return GatewayResponse(success=False, error="timeout")
        except aiohttp.ClientError as e:
            logger.error(f"[CRM-GATEWAY] Connection error: {e}")
            return GatewayResponse(success=False, error=f"connection error: {e}")
