import json

import pytest
import requests

from circle_search import config
from circle_search.http import HttpClient, RequestMetrics
from circle_search.places_client import (
    NearbyRequest,
    PlacesClient,
    PlacesSearchError,
    RelayPlacesClient,
    build_nearby_search_body,
    build_relay_body,
    parse_places_response,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)
        return None


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "body": json.loads(data), "headers": headers})
        if self.exc is not None:
            raise self.exc
        return self.response


def make_http_client(session, api_key=None):
    client = HttpClient(api_key=api_key, timeout=1, retry_max=1, backoff_base=0.0, backoff_max=0.0)
    client.session = session
    return client


REQUEST = NearbyRequest(
    lat=41.9,
    lng=12.5,
    radius_m=700.0,
    included_types=("restaurant",),
    excluded_types=("lodging",),
)


def test_build_relay_body():
    assert build_relay_body(REQUEST) == {
        "lat": 41.9,
        "lng": 12.5,
        "radius": 700.0,
        "includedTypes": ["restaurant"],
        "excludedTypes": ["lodging"],
        "rankPreference": "POPULARITY",
    }


def test_build_nearby_search_body_defaults_included_types():
    body = build_nearby_search_body(NearbyRequest(lat=1.0, lng=2.0, radius_m=100))
    assert body["includedTypes"] == config.DEFAULT_INCLUDED_TYPES
    assert body["maxResultCount"] == config.PLACES_MAX_RESULT_COUNT
    assert body["locationRestriction"]["circle"] == {
        "center": {"latitude": 1.0, "longitude": 2.0},
        "radius": 100.0,
    }


def test_parse_places_response():
    assert parse_places_response({}) == []
    assert parse_places_response(None) == []
    assert parse_places_response({"places": [{"id": "a"}, "junk"]}) == [{"id": "a"}]


def test_relay_client_success():
    session = FakeSession(FakeResponse({"ok": True, "data": {"places": [{"id": "p1"}]}}))
    metrics = RequestMetrics()
    client = RelayPlacesClient(make_http_client(session), base_url="http://relay:3000/", metrics=metrics)

    places = client.search_nearby(REQUEST)

    assert places == [{"id": "p1"}]
    assert session.calls[0]["url"] == "http://relay:3000/api/places/searchNearby"
    assert session.calls[0]["body"]["rankPreference"] == "POPULARITY"
    assert "X-Goog-Api-Key" not in session.calls[0]["headers"]
    assert metrics.network_relay == 1
    assert metrics.failures_relay == 0


def test_relay_client_ok_false_raises():
    session = FakeSession(FakeResponse({"ok": False, "error": "quota"}))
    metrics = RequestMetrics()
    client = RelayPlacesClient(make_http_client(session), base_url="http://relay", metrics=metrics)
    with pytest.raises(PlacesSearchError, match="quota"):
        client.search_nearby(REQUEST)
    assert metrics.failures_relay == 1


def test_relay_client_http_500_uses_error_body():
    session = FakeSession(FakeResponse({"ok": False, "error": "boom"}, status_code=500))
    client = RelayPlacesClient(make_http_client(session), base_url="http://relay")
    with pytest.raises(PlacesSearchError, match="HTTP 500: boom"):
        client.search_nearby(REQUEST)


def test_relay_client_transport_error():
    session = FakeSession(exc=requests.ConnectionError("refused"))
    client = RelayPlacesClient(make_http_client(session), base_url="http://relay")
    with pytest.raises(PlacesSearchError, match="refused"):
        client.search_nearby(REQUEST)


def test_relay_client_upstream_error_inside_data():
    payload = {"ok": True, "data": {"error": {"code": 403, "message": "API key invalid"}}}
    client = RelayPlacesClient(make_http_client(FakeSession(FakeResponse(payload))), base_url="http://relay")
    with pytest.raises(PlacesSearchError, match="API key invalid"):
        client.search_nearby(REQUEST)


def test_direct_client_sends_key_and_field_mask():
    session = FakeSession(FakeResponse({"places": [{"id": "g1"}]}))
    metrics = RequestMetrics()
    client = PlacesClient(make_http_client(session, api_key="secret"), metrics=metrics)

    places = client.search_nearby(REQUEST)

    assert places == [{"id": "g1"}]
    call = session.calls[0]
    assert call["url"] == config.PLACES_NEARBY_SEARCH_URL
    assert call["headers"]["X-Goog-Api-Key"] == "secret"
    assert call["headers"]["X-Goog-FieldMask"] == config.PLACES_FIELD_MASK_MIN
    assert call["body"]["excludedTypes"] == ["lodging"]
    assert metrics.places_count == 1


def test_direct_client_counts_failures():
    session = FakeSession(FakeResponse({}, status_code=400))
    metrics = RequestMetrics()
    client = PlacesClient(make_http_client(session, api_key="secret"), metrics=metrics)
    with pytest.raises(requests.HTTPError):
        client.search_nearby(REQUEST)
    assert metrics.failures_places == 1


def test_request_metrics_rejects_unknown_kind():
    with pytest.raises(ValueError):
        RequestMetrics().inc_network("routes")


def test_request_max_result_count_overrides_default():
    request = NearbyRequest(lat=1.0, lng=2.0, radius_m=100, max_result_count=5)
    assert build_nearby_search_body(request)["maxResultCount"] == 5
    assert build_relay_body(request)["maxResultCount"] == 5
    assert "maxResultCount" not in build_relay_body(REQUEST)
