"""
Remote Consent Sink - HTTP client for the consent-collection endpoint.

Each consent record is POSTed as JSON:

    {"status": "accept", "device_id": "...", "date": "1970-01-01T00:00:01Z"}

A submit is a single attempt. HTTP answers (any status) come back as a
SubmitResult; failures before an answer raise TransportUnavailable.

Usage:
    async with RemoteConsentSink(base_url="https://consent.example.com/") as sink:
        result = await sink.submit(transmission)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from consent_sync.errors import TransportUnavailable
from consent_sync.models import ConsentTransmission

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.mocky.io/v2/"
DEFAULT_ENDPOINT = "5e14e8122d00002b00167430"


@dataclass
class SubmitResult:
    """
    Answer of the remote endpoint.

    Attributes:
        status_code: HTTP status code
        body: Raw response text
    """
    status_code: int
    body: str = ""

    @property
    def succeeded(self) -> bool:
        """Check if response indicates success."""
        return 200 <= self.status_code < 300


class ConsentSink(ABC):
    """Contract of the remote consent sink."""

    @abstractmethod
    async def submit(self, transmission: ConsentTransmission) -> SubmitResult:
        """Send one consent record; raise TransportUnavailable on network failure."""

    async def close(self) -> None:
        """Release network resources."""


class RemoteConsentSink(ConsentSink):
    """aiohttp implementation of the consent sink."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the sink.

        Args:
            base_url: Server root URL
            endpoint: Path of the consent resource, relative to base_url
            timeout: Total request timeout in seconds
            headers: Additional headers to include in every request
        """
        self.base_url = base_url
        self.endpoint = endpoint
        self._timeout = timeout
        self._custom_headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def url(self) -> str:
        base = self.base_url.rstrip('/')
        endpoint = self.endpoint.lstrip('/')
        return f"{base}/{endpoint}" if endpoint else base

    @property
    def headers(self) -> Dict[str, str]:
        base_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        base_headers.update(self._custom_headers)
        return base_headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "RemoteConsentSink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def submit(self, transmission: ConsentTransmission) -> SubmitResult:
        payload = transmission.to_payload()
        session = await self._get_session()
        logger.debug(f"POST {self.url} {payload}")

        try:
            async with session.post(self.url, json=payload) as response:
                body = await response.text()
                logger.debug(f"<- {response.status} {body[:200]}")
                return SubmitResult(status_code=response.status, body=body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportUnavailable(
                f"Consent endpoint unreachable: {type(e).__name__}: {e}",
                details={"url": self.url},
            ) from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={self.url})"
