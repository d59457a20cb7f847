"""Base classes shared by the registry and hosting providers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from renovate_safety.core.models import Ecosystem, PackageMetadata
from renovate_safety.errors import NotFoundError, RenovateSafetyError
from renovate_safety.utils.http import AsyncHttpClient
from renovate_safety.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of an external lookup: either a value or the reason it failed.

    ``missing`` marks failures where the source answered cleanly but had
    nothing to offer, as opposed to errors.
    """

    value: T | None = None
    error: str | None = None
    missing: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, missing: bool = False) -> "FetchResult[T]":
        return cls(error=error, missing=missing)


async def capture(description: str, operation: Awaitable[T]) -> FetchResult[T]:
    """Await an operation, turning domain errors into a failed ``FetchResult``.

    Args:
        description: What was being fetched, used as the failure prefix.
        operation: Awaitable performing the lookup.

    Returns:
        The value, or a failure carrying the error message.
    """
    try:
        return FetchResult.success(await operation)
    except NotFoundError as e:
        logger.debug("%s: nothing found (%s)", description, e.message)
        return FetchResult.failure(f"{description}: {e.message}", missing=True)
    except RenovateSafetyError as e:
        logger.debug("%s failed: %s", description, e.message)
        return FetchResult.failure(f"{description}: {e.message}")


class HttpProvider:
    """Mixin owning an ``AsyncHttpClient`` for the lifetime of an ``async with`` block."""

    service_name: ClassVar[str] = "remote service"

    def __init__(self, http: AsyncHttpClient | None = None, timeout: float = 30.0) -> None:
        """Initialize the provider.

        Args:
            http: Optional pre-built client (not closed on exit).
            timeout: Request timeout in seconds when a client is created.
        """
        self._http = http
        self._owns_http = False
        self.timeout = timeout

    def _create_http(self) -> AsyncHttpClient:
        return AsyncHttpClient(self.service_name, timeout=self.timeout)

    async def __aenter__(self) -> Any:
        if self._http is None:
            self._http = self._create_http()
            await self._http.__aenter__()
            self._owns_http = True
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        if self._owns_http and self._http is not None:
            await self._http.__aexit__(exc_type, exc_val, exc_tb)
            self._http = None
            self._owns_http = False

    @property
    def http(self) -> AsyncHttpClient:
        """Get the HTTP client."""
        if self._http is None:
            raise RuntimeError("Provider not initialized. Use async with statement.")
        return self._http


class RegistryProvider(HttpProvider, ABC):
    """Package registry lookups used by the analyzers and the changelog chain."""

    ecosystem: ClassVar[Ecosystem]

    @abstractmethod
    async def fetch_metadata(self, name: str, version: str) -> FetchResult[PackageMetadata]:
        """Fetch registry metadata for one published version."""

    @abstractmethod
    async def fetch_readme_or_description(self, name: str, version: str) -> FetchResult[str]:
        """Fetch the long description or README shipped with a version."""

    @abstractmethod
    async def fetch_diff(self, name: str, from_version: str, to_version: str) -> FetchResult[str]:
        """Build a unified diff between two published archives."""
