"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from circle_search import config
from circle_search.dedupe import log_report
from circle_search.geo import Circle, InvalidCircleError
from circle_search.http import HttpClient, RequestMetrics
from circle_search.orchestrator import STATUS_FAILED, group_by_search
from circle_search.places_client import PlacesClient, RelayPlacesClient
from circle_search.reporting import (
    ensure_dir,
    render_search_summary,
    utc_now_iso,
    write_json_object,
    write_results_csv,
    write_results_json,
    write_summary,
)
from circle_search.searches import SearchSpec, apply_type_overrides, load_searches
from circle_search.state import AppState, SearchSession

logger = logging.getLogger("circle_search.run")


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def parse_type_overrides(values: Optional[List[str]]) -> Dict[int, Dict[str, str]]:
    """Parse ``ID=included[;excluded]`` items, e.g. ``5=cafe,bar;hotel``."""
    overrides: Dict[int, Dict[str, str]] = {}
    for item in values or []:
        if "=" not in item:
            raise ValueError(f"Type override must look like ID=included[;excluded]: {item!r}")
        raw_id, rest = item.split("=", 1)
        try:
            search_id = int(raw_id.strip())
        except ValueError as exc:
            raise ValueError(f"Type override id must be an integer: {raw_id!r}") from exc
        included, _, excluded = rest.partition(";")
        overrides[search_id] = {"included": included, "excluded": excluded}
    return overrides


def select_specs(specs: List[SearchSpec], only: Optional[str]) -> List[SearchSpec]:
    if not only:
        return specs
    wanted = {int(x) for x in only.split(",") if x.strip()}
    return [s for s in specs if s.id in wanted]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fan-out nearby search over a circle")
    parser.add_argument("--lat", type=float, default=None, help="Circle center latitude")
    parser.add_argument("--lng", type=float, default=None, help="Circle center longitude")
    parser.add_argument("--radius", type=float, default=1000.0, help="Circle radius in meters")
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Call the Places API directly with GOOGLE_MAPS_API_KEY instead of the relay",
    )
    parser.add_argument("--relay-url", type=str, default=None)
    parser.add_argument(
        "--types",
        action="append",
        default=None,
        metavar="ID=INCLUDED[;EXCLUDED]",
        help="Override place types for a non-spatial search (repeatable)",
    )
    parser.add_argument("--only", type=str, default=None, help="Comma-separated search ids to run")
    parser.add_argument("--save-day", type=str, default=None, help="Add all results to this trip day")
    parser.add_argument("--state-path", type=str, default=None)
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    parser.add_argument("--no-export", action="store_true", help="Skip writing result files")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def build_client(args: argparse.Namespace, metrics: RequestMetrics):
    if args.direct:
        api_key = (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip()
        if not api_key:
            raise ValueError("Missing GOOGLE_MAPS_API_KEY in environment")
        http_client = HttpClient(api_key=api_key)
        return PlacesClient(http_client, field_mask=config.PLACES_FIELD_MASK_FULL, metrics=metrics)
    return RelayPlacesClient(HttpClient(), base_url=args.relay_url, metrics=metrics)


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    config.load_search_config()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config.apply_env_overrides()
        specs = load_searches()
        specs = apply_type_overrides(specs, parse_type_overrides(args.types))
        specs = select_specs(specs, args.only)
        metrics = RequestMetrics()
        client = build_client(args, metrics)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    lat = args.lat if args.lat is not None else config.DEFAULT_CENTER["lat"]
    lng = args.lng if args.lng is not None else config.DEFAULT_CENTER["lng"]
    circle = Circle(lat=lat, lng=lng, radius_m=args.radius)

    state = AppState(state_path=args.state_path)
    session = SearchSession(state, client, specs)
    try:
        result, _ = session.run(circle)
    except InvalidCircleError as exc:
        print(f"Invalid circle: {exc}", file=sys.stderr)
        return 2

    log_report(result.duplicates)
    summary = result.to_summary()
    summary["generated_at"] = utc_now_iso()
    labels = {s.id: s.label for s in specs}
    lines = render_search_summary(summary, labels)

    if not args.no_export:
        ensure_dir(args.out)
        out_dir = Path(args.out)
        write_results_json(str(out_dir / "places.json"), state.search_results)
        write_results_csv(str(out_dir / "places.csv"), state.search_results)
        summary["duplicates"] = result.duplicates.to_dict()
        write_json_object(str(out_dir / "search_summary.json"), summary)
        write_summary(str(out_dir / "summary.txt"), lines)

    if args.save_day:
        for place in state.search_results:
            state.add_to_trip(args.save_day, place)

    for line in lines:
        print(line)
    print("Groups:")
    for search_id, places in group_by_search(state.search_results, specs).items():
        print(f"  {labels.get(search_id, search_id)}: {len(places)}")

    if result.status == STATUS_FAILED:
        print("No results: every search failed", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
