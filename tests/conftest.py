from typing import Optional

import pytest

from thundermodman.models import DependencyReference, Package


def make_package(
    full_name: str,
    version: str = "1.0.0",
    deps: Optional[list[str]] = None,
    community: str = "valheim",
    exact: bool = False,
) -> Package:
    namespace, name = full_name.split("-", 1)
    references = []
    for dep in deps or []:
        dep_name, _, dep_version = dep.rpartition("-")
        references.append(DependencyReference(full_name=dep_name, version=dep_version, exact=exact))
    return Package(
        full_name=full_name,
        namespace=namespace,
        name=name,
        version=version,
        community=community,
        dependencies=tuple(references),
        download_url=f"https://example.invalid/{full_name}/{version}.zip",
    )


class FakeIndex:
    """In-memory stand-in for the package index, keyed by full name."""

    def __init__(self, packages: list[Package]) -> None:
        self.versions: dict[str, list[Package]] = {}
        for package in packages:
            self.versions.setdefault(package.full_name, []).append(package)
        for versions in self.versions.values():
            versions.sort(key=lambda p: p.version_key, reverse=True)

    def get_by_full_name(self, community: str, full_name: str) -> Optional[Package]:
        versions = self.versions.get(full_name)
        return versions[0] if versions else None

    def get_versions(self, community: str, full_name: str) -> list[Package]:
        return list(self.versions.get(full_name, []))


@pytest.fixture()
def diamond_index() -> FakeIndex:
    return FakeIndex(
        [
            make_package("Author-A", deps=["Author-B-1.0.0", "Author-C-1.0.0"]),
            make_package("Author-B", deps=["Author-D-1.0.0"]),
            make_package("Author-C", deps=["Author-D-1.0.0"]),
            make_package("Author-D"),
        ]
    )
