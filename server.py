"""Places search relay server.

Keeps the Google Maps API key on the server side: the fan-out client posts
nearby-search requests here and gets the upstream response wrapped as
``{"ok": true, "data": ...}`` or ``{"ok": false, "error": ...}``.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from dotenv import load_dotenv

from circle_search import config
from circle_search.http import HttpClient
from circle_search.places_client import NearbyRequest, PlacesClient

REPO_ROOT = Path(__file__).resolve().parent

logger = logging.getLogger("circle_search.server")

ClientFactory = Callable[[str], PlacesClient]


def default_client_factory(api_key: str) -> PlacesClient:
    http_client = HttpClient(api_key=api_key, retry_max=3)
    return PlacesClient(http_client, field_mask=config.PLACES_FIELD_MASK_FULL)


def _api_key() -> str:
    return (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip()


def _type_list(value: Any, field_name: str) -> List[str]:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{field_name} must be a list of place types")
    return [str(t) for t in value if t not in (None, "")]


def _max_result_count(value: Any) -> int:
    limit = config.PLACES_MAX_RESULT_COUNT
    if value in (None, ""):
        return limit
    message = f"maxResultCount must be an integer between 1 and {limit}"
    if isinstance(value, bool):
        raise ValueError(message)
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(message) from exc
    if not 1 <= count <= limit:
        raise ValueError(message)
    return count


def parse_search_payload(payload: Dict[str, Any]) -> NearbyRequest:
    missing = [k for k in ("lat", "lng", "radius") if payload.get(k) in (None, "")]
    if missing:
        raise ValueError("lat, lng and radius are required")
    try:
        lat = float(payload["lat"])
        lng = float(payload["lng"])
        radius = float(payload["radius"])
    except (TypeError, ValueError) as exc:
        raise ValueError("lat, lng and radius must be numbers") from exc
    if radius <= 0:
        raise ValueError("radius must be positive")
    included = _type_list(payload.get("includedTypes"), "includedTypes") or list(config.DEFAULT_INCLUDED_TYPES)
    excluded = _type_list(payload.get("excludedTypes"), "excludedTypes")
    return NearbyRequest(
        lat=lat,
        lng=lng,
        radius_m=radius,
        included_types=tuple(included),
        excluded_types=tuple(excluded),
        rank_preference=str(payload.get("rankPreference") or config.RANK_PREFERENCE),
        max_result_count=_max_result_count(payload.get("maxResultCount")),
    )


def handle_search_nearby(
    payload: Dict[str, Any],
    api_key: str,
    client_factory: ClientFactory = default_client_factory,
) -> Tuple[int, Dict[str, Any]]:
    if not api_key:
        return 500, {"ok": False, "error": "Server missing Google Maps API key"}
    try:
        request = parse_search_payload(payload or {})
    except ValueError as exc:
        return 400, {"ok": False, "error": str(exc)}

    logger.info(
        "searchNearby lat=%s lng=%s radius=%sm included=%s excluded=%s",
        request.lat,
        request.lng,
        request.radius_m,
        ",".join(request.included_types),
        ",".join(request.excluded_types),
    )
    client = client_factory(api_key)
    try:
        data = client.search_nearby_raw(request)
    except (requests.RequestException, ValueError) as exc:
        logger.error("Error calling Google Places API: %s", exc)
        return 500, {"ok": False, "error": str(exc)}
    return 200, {"ok": True, "data": data}


def status_payload(api_key: str) -> Dict[str, Any]:
    return {"ok": True, "hasGoogleKey": bool(api_key)}


class RelayHandler(BaseHTTPRequestHandler):
    client_factory: ClientFactory = staticmethod(default_client_factory)

    def do_GET(self) -> None:
        if self.path == "/status":
            self._send_json(status_payload(_api_key()))
        else:
            self._send_json({"ok": False, "error": "Not found"}, 404)

    def do_POST(self) -> None:
        if self.path != config.RELAY_SEARCH_PATH:
            self._send_json({"ok": False, "error": "Not found"}, 404)
            return
        try:
            payload = self._read_json_body()
        except ValueError:
            self._send_json({"ok": False, "error": "Invalid JSON body"}, 400)
            return
        if not isinstance(payload, dict):
            self._send_json({"ok": False, "error": "JSON body must be an object"}, 400)
            return
        status, body = handle_search_nearby(payload, _api_key(), self.client_factory)
        self._send_json(body, status)

    def _read_json_body(self) -> Any:
        length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(length)
        return json.loads(raw) if raw else {}

    def _send_json(self, data: Dict[str, Any], status: int = 200) -> None:
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), fmt % args)


def main(argv: Optional[list] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)
    config.load_search_config()
    config.apply_env_overrides()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    port = int(argv[0]) if argv else config.SERVER_PORT
    server = ThreadingHTTPServer(("", port), RelayHandler)
    logger.info("Relay listening on http://localhost:%s", port)
    if not _api_key():
        logger.warning("GOOGLE_MAPS_API_KEY is not set; searches will fail")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down.")
    server.server_close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
