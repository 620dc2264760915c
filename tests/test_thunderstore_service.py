import httpx
import pytest

from thundermodman.errors import NotFoundError, ValidationError
from thundermodman.services.thunderstore_service import ThunderstoreError, ThunderstoreService

LISTING = [
    {
        "name": "ValheimPlus",
        "full_name": "Grantapher-ValheimPlus",
        "owner": "Grantapher",
        "date_updated": "2024-03-01T10:00:00.000000Z",
        "rating_score": 120,
        "is_deprecated": False,
        "categories": ["Mods", "Tweaks"],
        "versions": [
            {
                "version_number": "0.9.12",
                "description": "Quality of life overhaul",
                "icon": "https://cdn.example/icon.png",
                "download_url": "https://thunderstore.io/package/download/Grantapher/ValheimPlus/0.9.12/",
                "downloads": 900,
                "dependencies": ["denikson-BepInExPack_Valheim-5.4.2202"],
            },
            {
                "version_number": "0.9.9",
                "description": "Older",
                "download_url": "https://thunderstore.io/package/download/Grantapher/ValheimPlus/0.9.9/",
                "downloads": 100,
                "dependencies": [],
            },
        ],
    },
    {
        "name": "BepInExPack_Valheim",
        "full_name": "denikson-BepInExPack_Valheim",
        "owner": "denikson",
        "date_updated": "2023-11-20T08:00:00.000000Z",
        "rating_score": 400,
        "categories": ["Libraries"],
        "versions": [
            {
                "version_number": "5.4.2202",
                "description": "BepInEx pack for Valheim",
                "download_url": "https://thunderstore.io/package/download/denikson/BepInExPack_Valheim/5.4.2202/",
                "downloads": 5000,
                "dependencies": ["not a dependency string"],
            }
        ],
    },
    {
        "name": "Broken",
        "full_name": "Someone-Broken",
        "owner": "Someone",
        "categories": [],
        "versions": [{"version_number": "latest", "dependencies": []}],
    },
]


def _service(handler, **kwargs) -> ThunderstoreService:
    return ThunderstoreService(
        base_url="https://thunderstore.test",
        communities=["valheim", "lethal-company"],
        cache_ttl_seconds=kwargs.pop("cache_ttl_seconds", 600),
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture()
def calls():
    return []


@pytest.fixture()
def service(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/c/valheim/api/v1/package/":
            return httpx.Response(200, json=LISTING)
        return httpx.Response(404, json={"detail": "Not found."})

    return _service(handler)


def test_list_communities_uses_configured_ids(service):
    communities = service.list_communities()

    assert [c.identifier for c in communities] == ["valheim", "lethal-company"]
    assert communities[1].name == "Lethal Company"


def test_list_packages_returns_latest_versions_and_skips_invalid(service):
    packages = {p.full_name: p for p in service.list_packages("valheim")}

    assert set(packages) == {"Grantapher-ValheimPlus", "denikson-BepInExPack_Valheim"}
    plus = packages["Grantapher-ValheimPlus"]
    assert plus.version == "0.9.12"
    assert plus.downloads == 1000
    assert plus.categories == frozenset({"Mods", "Tweaks"})
    assert [str(d) for d in plus.dependencies] == ["denikson-BepInExPack_Valheim>=5.4.2202"]
    assert packages["denikson-BepInExPack_Valheim"].dependencies == ()


def test_listing_is_cached_per_community(service, calls):
    service.list_packages("valheim")
    service.get_by_full_name("valheim", "Grantapher-ValheimPlus")
    service.search("valheim", "plus")

    assert calls == ["/c/valheim/api/v1/package/"]

    service.invalidate("valheim")
    service.list_packages("valheim")
    assert len(calls) == 2


def test_get_versions_highest_first(service):
    versions = service.get_versions("valheim", "Grantapher-ValheimPlus")

    assert [v.version for v in versions] == ["0.9.12", "0.9.9"]
    assert service.get_versions("valheim", "Nobody-Nothing") == []
    assert service.get_by_full_name("valheim", "Nobody-Nothing") is None


def test_search_filters_and_sorts(service):
    assert [p.full_name for p in service.search("valheim", "bepinex")] == [
        "denikson-BepInExPack_Valheim"
    ]
    assert [p.full_name for p in service.search("valheim", categories=["tweaks"])] == [
        "Grantapher-ValheimPlus"
    ]
    assert [p.full_name for p in service.search("valheim", sort="rating")] == [
        "denikson-BepInExPack_Valheim",
        "Grantapher-ValheimPlus",
    ]
    assert [p.full_name for p in service.search("valheim")] == [
        "Grantapher-ValheimPlus",
        "denikson-BepInExPack_Valheim",
    ]


def test_search_rejects_unknown_sort(service):
    with pytest.raises(ValidationError):
        service.search("valheim", sort="random")


def test_unknown_community_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.list_packages("not-a-game")


def test_server_error_raises_thunderstore_error():
    service = _service(lambda request: httpx.Response(503, text="maintenance"))

    with pytest.raises(ThunderstoreError) as excinfo:
        service.list_packages("valheim")
    assert excinfo.value.status_code == 503


def test_timeout_raises_thunderstore_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ThunderstoreError) as excinfo:
        _service(handler).list_packages("valheim")
    assert excinfo.value.status_code == 504


def test_non_json_listing_raises_thunderstore_error():
    service = _service(lambda request: httpx.Response(200, text="<html>Down for maintenance</html>"))

    with pytest.raises(ThunderstoreError) as excinfo:
        service.list_packages("valheim")
    assert excinfo.value.status_code == 502
