import httpx
import pytest

from onthespot.integrations import place_search


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(place_search, "PLACE_SEARCH_API_KEY", "test-key")


async def test_blank_query_returns_nothing():
    assert await place_search.search_places("   ") == []


async def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(place_search, "PLACE_SEARCH_API_KEY", "")
    with pytest.raises(ValueError):
        await place_search.search_places("cafe")


async def test_results_are_standardized(api_key):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"documents": [{
            "place_name": "Blue Cafe",
            "category_group_name": "카페",
            "address_name": "서울 성북구 안암동",
            "road_address_name": "서울 성북구 안암로 1",
            "x": "127.03",
            "y": "37.59",
        }]})

    places = await place_search.search_places("cafe", lat=37.59, lng=127.03, transport=httpx.MockTransport(handler))

    assert places == [{
        "name": "Blue Cafe",
        "category": "카페",
        "address": "서울 성북구 안암로 1",
        "lat": 37.59,
        "lng": 127.03,
        "provider": "kakao",
    }]
    assert seen["auth"] == "KakaoAK test-key"
    assert seen["params"]["query"] == "cafe"
    assert seen["params"]["y"] == "37.59"


async def test_http_error(api_key):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={}))
    with pytest.raises(RuntimeError):
        await place_search.search_places("cafe", transport=transport)
