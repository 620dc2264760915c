import logging
from typing import Iterable

from ..errors import NotFoundError, ServiceError
from ..models import InstallResult, Package
from .mod_store import ModStore
from .resolver import DependencyResolver
from .thunderstore_service import ThunderstoreError, ThunderstoreService

logger = logging.getLogger(__name__)


class InstallationOrchestrator:
    def __init__(
        self,
        index: ThunderstoreService,
        resolver: DependencyResolver,
        mod_store: ModStore,
    ) -> None:
        self.index = index
        self.resolver = resolver
        self.mod_store = mod_store

    def install(self, community: str, full_name: str, include_deps: bool) -> list[InstallResult]:
        """Install a package, optionally with its full dependency plan.

        Resolution problems abort the request before anything is written.
        Once a plan exists every entry is attempted and reported.
        """
        if include_deps:
            plan = self.resolver.resolve(community, full_name)
        else:
            package = self.index.get_by_full_name(community, full_name)
            if package is None:
                raise NotFoundError(f"Package not found in {community}: {full_name}")
            plan = [package]
        return self.apply_plan(plan)

    def apply_plan(self, plan: Iterable[Package]) -> list[InstallResult]:
        results: list[InstallResult] = []
        for package in plan:
            try:
                result = self.mod_store.install(package)
            except (ServiceError, ThunderstoreError) as exc:
                logger.warning("Install of %s %s failed: %s", package.full_name, package.version, exc.message)
                result = InstallResult(full_name=package.full_name, success=False, message=exc.message)
            except Exception as exc:
                logger.exception("Install of %s %s failed", package.full_name, package.version)
                result = InstallResult(full_name=package.full_name, success=False, message=str(exc))
            results.append(result)

        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.info("Applied plan of %d packages, %d failed", len(results), failed)
        return results

    def uninstall(self, full_name: str) -> InstallResult:
        return self.mod_store.uninstall(full_name)
