import logging
from typing import Optional

from ..config import settings
from ..errors import (
    CyclicDependencyError,
    NotFoundError,
    UnresolvableVersionError,
    VersionConflictError,
)
from ..models import DependencyReference, Package
from .thunderstore_service import ThunderstoreService

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Turns a requested package into an ordered installation plan.

    The plan lists every transitive dependency exactly once, each one ahead of
    the packages that need it, with the requested package last. A full name is
    bound to the first version chosen for it; later references to the same
    full name reuse that choice.
    """

    def __init__(
        self,
        index: ThunderstoreService,
        strict_version_conflicts: Optional[bool] = None,
    ) -> None:
        self.index = index
        self.strict_version_conflicts = (
            settings.strict_version_conflicts
            if strict_version_conflicts is None
            else strict_version_conflicts
        )

    def resolve(self, community: str, full_name: str) -> list[Package]:
        root = self.index.get_by_full_name(community, full_name)
        if root is None:
            raise NotFoundError(f"Package not found in {community}: {full_name}")

        plan: list[Package] = []
        self._expand(community, root, resolved={}, path=[], plan=plan)
        logger.debug(
            "Resolved %s in %s: %s",
            full_name,
            community,
            ", ".join(f"{p.full_name}@{p.version}" for p in plan),
        )
        return plan

    def _expand(
        self,
        community: str,
        package: Package,
        resolved: dict[str, Package],
        path: list[str],
        plan: list[Package],
    ) -> None:
        path.append(package.full_name)
        for reference in package.dependencies:
            chosen = resolved.get(reference.full_name)
            if chosen is not None:
                self._check_conflict(reference, chosen, package)
                continue
            if reference.full_name in path:
                start = path.index(reference.full_name)
                raise CyclicDependencyError(path[start:] + [reference.full_name])
            dependency = self._select_version(community, reference, package)
            self._expand(community, dependency, resolved, path, plan)
        path.pop()

        resolved[package.full_name] = package
        plan.append(package)

    def _select_version(
        self, community: str, reference: DependencyReference, dependent: Package
    ) -> Package:
        candidates = self.index.get_versions(community, reference.full_name)
        if not candidates:
            raise UnresolvableVersionError(
                f"{dependent.full_name} requires {reference.full_name}, "
                f"which is not available in {community}"
            )
        matching = [p for p in candidates if reference.satisfied_by(p.version)]
        if not matching:
            raise UnresolvableVersionError(
                f"{dependent.full_name} requires {reference}, but no such version is available"
            )
        return max(matching, key=lambda p: p.version_key)

    def _check_conflict(
        self, reference: DependencyReference, chosen: Package, dependent: Package
    ) -> None:
        if reference.satisfied_by(chosen.version):
            return
        message = (
            f"{dependent.full_name} requires {reference}, "
            f"but {chosen.full_name}@{chosen.version} was already selected"
        )
        if self.strict_version_conflicts:
            raise VersionConflictError(message)
        logger.warning("Version conflict ignored: %s", message)
