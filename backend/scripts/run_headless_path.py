from __future__ import annotations

import argparse
import csv
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

import httpx


def _utc_now_compact() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find risk-weighted paths for a batch of OD pairs against a running backend."
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--input-json", default=None)
    group.add_argument("--input-csv", default=None)
    parser.add_argument("--backend-url", default="http://localhost:8000")
    parser.add_argument("--save-dir", default="out/headless")
    parser.add_argument("--summary-path", default=None)
    return parser


def _pair(origin_lng: Any, origin_lat: Any, destination_lng: Any, destination_lat: Any) -> dict[str, dict[str, float]]:
    return {
        "origin": {"lng": float(origin_lng), "lat": float(origin_lat)},
        "destination": {"lng": float(destination_lng), "lat": float(destination_lat)},
    }


def load_pairs_from_json(path: str) -> list[dict[str, dict[str, float]]]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("pairs")
    if not isinstance(payload, list) or not payload:
        raise ValueError("JSON input must be a non-empty list of pairs or an object with 'pairs'")
    return [
        _pair(p["origin"]["lng"], p["origin"]["lat"], p["destination"]["lng"], p["destination"]["lat"])
        for p in payload
    ]


def load_pairs_from_csv(path: str) -> list[dict[str, dict[str, float]]]:
    pairs: list[dict[str, dict[str, float]]] = []
    with Path(path).open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"origin_lng", "origin_lat", "destination_lng", "destination_lat"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ValueError(
                "CSV must include columns: origin_lng, origin_lat, destination_lng, destination_lat"
            )
        for row in reader:
            pairs.append(_pair(row["origin_lng"], row["origin_lat"], row["destination_lng"], row["destination_lat"]))

    if not pairs:
        raise ValueError("CSV input produced zero OD pairs")
    return pairs


def _path_params(pair: dict[str, dict[str, float]]) -> dict[str, float]:
    return {
        "origin[lng]": pair["origin"]["lng"],
        "origin[lat]": pair["origin"]["lat"],
        "destination[lng]": pair["destination"]["lng"],
        "destination[lat]": pair["destination"]["lat"],
    }


def execute_headless_paths(
    pairs: list[dict[str, dict[str, float]]],
    *,
    backend_url: str,
    save_dir: str,
    summary_path: str | None = None,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    base = backend_url.rstrip("/")
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=90.0)

    try:
        results: list[dict[str, Any]] = []
        for pair in pairs:
            resp = client.get(f"{base}/path", params=_path_params(pair))
            body = resp.json()
            if resp.status_code == 200:
                results.append({**pair, "routes": body})
            else:
                message = (body.get("error") or {}).get("message") if isinstance(body, dict) else None
                results.append({**pair, "error": message or f"HTTP {resp.status_code}"})

        run_dir = Path(save_dir)
        run_dir.mkdir(parents=True, exist_ok=True)
        stamp = _utc_now_compact()
        results_file = run_dir / f"paths_{stamp}.json"
        results_file.write_text(json.dumps(results, indent=2), encoding="utf-8")

        summary = {
            "timestamp": datetime.now(UTC).isoformat(),
            "pair_count": len(pairs),
            "error_count": sum(1 for r in results if r.get("error")),
            "route_count": sum(len(r.get("routes", [])) for r in results),
            "results_file": str(results_file),
        }
        summary_file = Path(summary_path) if summary_path else run_dir / f"headless_summary_{stamp}.json"
        summary_file.parent.mkdir(parents=True, exist_ok=True)
        summary_file.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        summary["summary_file"] = str(summary_file)
        return summary
    finally:
        if own_client and client is not None:
            client.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    pairs = load_pairs_from_json(args.input_json) if args.input_json else load_pairs_from_csv(args.input_csv)
    summary = execute_headless_paths(
        pairs,
        backend_url=args.backend_url,
        save_dir=args.save_dir,
        summary_path=args.summary_path,
    )
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
