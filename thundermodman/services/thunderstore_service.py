import logging
import time
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError as ModelValidationError

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models import Community, DependencyReference, Package
from ..versioning import split_dependency_string

logger = logging.getLogger(__name__)

SORT_KEYS = {"last-updated", "downloads", "rating", "name"}


class ThunderstoreError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ThunderstoreService:
    """Read-only client for the Thunderstore community package index.

    A community listing is several megabytes, so the parsed listing is cached
    per community and every lookup (search, by-name, versions) is served from
    that cache until it expires.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        communities: Optional[Iterable[str]] = None,
        cache_ttl_seconds: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.thunderstore_base_url).rstrip("/")
        self.communities = tuple(communities or settings.communities)
        self.timeout = httpx.Timeout(settings.http_timeout_seconds)
        self.transport = transport
        self._cache_ttl_seconds = (
            settings.package_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        )
        self._cache: dict[str, tuple[float, dict[str, list[Package]]]] = {}

    def list_communities(self) -> list[Community]:
        return [
            Community(identifier=identifier, name=identifier.replace("-", " ").title())
            for identifier in self.communities
        ]

    def list_packages(self, community: str) -> list[Package]:
        index = self._get_index(community)
        return [versions[0] for versions in index.values() if versions]

    def search(
        self,
        community: str,
        query: str = "",
        sort: str = "last-updated",
        categories: Optional[Iterable[str]] = None,
    ) -> list[Package]:
        if sort not in SORT_KEYS:
            raise ValidationError(f"Unsupported sort: {sort}")
        wanted = {c.strip().lower() for c in categories or [] if c.strip()}
        needle = query.strip().lower()

        results: list[Package] = []
        for package in self.list_packages(community):
            if needle and not (
                needle in package.name.lower()
                or needle in package.namespace.lower()
                or needle in package.description.lower()
            ):
                continue
            if wanted and not wanted.issubset({c.lower() for c in package.categories}):
                continue
            results.append(package)

        if sort == "downloads":
            results.sort(key=lambda p: p.downloads, reverse=True)
        elif sort == "rating":
            results.sort(key=lambda p: p.rating, reverse=True)
        elif sort == "name":
            results.sort(key=lambda p: p.name.lower())
        else:
            results.sort(
                key=lambda p: p.last_updated.timestamp() if p.last_updated else 0.0,
                reverse=True,
            )
        return results

    def get_by_full_name(self, community: str, full_name: str) -> Optional[Package]:
        versions = self._get_index(community).get(full_name)
        return versions[0] if versions else None

    def get_versions(self, community: str, full_name: str) -> list[Package]:
        return list(self._get_index(community).get(full_name, []))

    def invalidate(self, community: Optional[str] = None) -> None:
        if community is None:
            self._cache.clear()
        else:
            self._cache.pop(community, None)

    def _get_index(self, community: str) -> dict[str, list[Package]]:
        entry = self._cache.get(community)
        if entry and entry[0] >= time.time():
            return entry[1]

        data = self._get(f"/c/{community}/api/v1/package/", community)
        if not isinstance(data, list):
            raise ThunderstoreError(502, "Thunderstore returned an unexpected package listing")

        index: dict[str, list[Package]] = {}
        for item in data:
            if not isinstance(item, dict):
                continue
            versions = self._parse_listing(community, item)
            if versions:
                index[versions[0].full_name] = versions

        self._cache[community] = (time.time() + self._cache_ttl_seconds, index)
        logger.info("Loaded %d packages for community %s", len(index), community)
        return index

    def _parse_listing(self, community: str, item: dict[str, Any]) -> list[Package]:
        full_name = item.get("full_name")
        owner = item.get("owner")
        name = item.get("name")
        if not all(isinstance(v, str) and v for v in (full_name, owner, name)):
            return []

        raw_versions = item.get("versions") or []
        if not isinstance(raw_versions, list):
            return []
        total_downloads = sum(
            v.get("downloads") or 0 for v in raw_versions if isinstance(v, dict)
        )

        packages: list[Package] = []
        for raw in raw_versions:
            if not isinstance(raw, dict):
                continue
            try:
                packages.append(
                    Package(
                        full_name=full_name,
                        namespace=owner,
                        name=name,
                        version=raw.get("version_number") or "",
                        community=community,
                        dependencies=tuple(self._parse_dependencies(full_name, raw.get("dependencies"))),
                        last_updated=item.get("date_updated"),
                        categories=frozenset(item.get("categories") or []),
                        description=raw.get("description") or "",
                        icon=raw.get("icon"),
                        download_url=raw.get("download_url"),
                        downloads=total_downloads,
                        rating=item.get("rating_score") or 0,
                        deprecated=bool(item.get("is_deprecated")),
                    )
                )
            except ModelValidationError as exc:
                logger.warning(
                    "Skipping invalid version %r of %s: %s",
                    raw.get("version_number"),
                    full_name,
                    exc.errors()[0].get("msg") if exc.errors() else exc,
                )

        packages.sort(key=lambda p: p.version_key, reverse=True)
        return packages

    def _parse_dependencies(self, full_name: str, raw: Any) -> list[DependencyReference]:
        if not isinstance(raw, list):
            return []
        references: list[DependencyReference] = []
        for entry in raw:
            parts = split_dependency_string(entry) if isinstance(entry, str) else None
            if parts is None:
                logger.warning("Ignoring malformed dependency %r of %s", entry, full_name)
                continue
            references.append(DependencyReference(full_name=parts[0], version=parts[1]))
        return references

    def _get(self, path: str, community: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(
                    url,
                    headers={"User-Agent": "ThunderModMan/1.0"},
                    follow_redirects=True,
                )
        except httpx.TimeoutException as exc:
            raise ThunderstoreError(504, f"Thunderstore request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise ThunderstoreError(502, f"Thunderstore request failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"Community not found: {community}")
        if response.status_code >= 400:
            raise ThunderstoreError(
                response.status_code,
                f"Thunderstore error {response.status_code}: {response.text}",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ThunderstoreError(502, f"Thunderstore returned invalid JSON: {exc}") from exc
