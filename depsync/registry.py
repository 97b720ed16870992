"""Latest-version lookups against the crates.io package index."""

import asyncio
import logging
from urllib.parse import quote

import httpx

from .errors import DepSyncError, ParseError, RegistryError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://crates.io"
DEFAULT_USER_AGENT = "depsync/0.1.0 (dependency sync bot)"


class CratesRegistry:
    """Client for the crates.io ``/api/v1/crates/{name}`` endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        max_concurrency: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the registry client.

        Args:
            base_url: Registry root URL
            user_agent: Identifying client header; crates.io rejects
                anonymous crawlers
            timeout: Request timeout in seconds
            max_concurrency: Maximum concurrent requests
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def fetch_latest_stable(self, package_name: str) -> str:
        """Get the latest stable version of a package.

        Args:
            package_name: Name of the crate

        Returns:
            The ``max_stable_version`` reported by the index

        Raises:
            TransportError: Network, TLS or timeout failure
            RegistryError: Non-success response status
            ParseError: Body is not JSON or lacks the version field
        """
        url = f"{self.base_url}/api/v1/crates/{quote(package_name, safe='')}"
        context = {"operation": "fetch_latest_stable", "file_path": package_name}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout fetching {package_name}: {e}", **context) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Network error fetching {package_name}: {e}", **context) from e

        if not response.is_success:
            raise RegistryError(
                f"Registry returned {response.status_code} for {package_name}",
                status_code=response.status_code,
                **context,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON for {package_name}: {e}", **context) from e

        version = None
        if isinstance(payload, dict) and isinstance(payload.get("crate"), dict):
            version = payload["crate"].get("max_stable_version")
        if not isinstance(version, str) or not version:
            raise ParseError(f"No max_stable_version in response for {package_name}", **context)

        return version

    async def fetch_latest_versions(
        self, package_names: list[str]
    ) -> tuple[dict[str, str], list[DepSyncError]]:
        """Fetch several packages, one request each.

        A failure for one package never aborts the others; failures are
        returned next to the successful lookups.
        """

        async def fetch_one(name: str) -> str:
            async with self._semaphore:
                return await self.fetch_latest_stable(name)

        results = await asyncio.gather(
            *(fetch_one(name) for name in package_names), return_exceptions=True
        )

        versions: dict[str, str] = {}
        errors: list[DepSyncError] = []
        for name, result in zip(package_names, results):
            if isinstance(result, DepSyncError):
                logger.warning("Failed to fetch latest version of %s: %s", name, result)
                errors.append(result)
            elif isinstance(result, Exception):
                logger.warning("Failed to fetch latest version of %s: %s", name, result)
                errors.append(
                    TransportError(
                        f"Unexpected error fetching {name}: {result}",
                        file_path=name,
                        operation="fetch_latest_stable",
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                logger.info("Latest version of %s is %s", name, result)
                versions[name] = result

        return versions, errors
