import csv
import json
import pathlib
import time
from typing import Dict, List

import requests

import config
from states_data import REGIONS
from us_map import normalize_features


CATALOG_CSV = config.BASE_DIR / "states_catalog.csv"


def download_state_shapes(url: str = config.MAP_GEOJSON_URL) -> Dict[str, Dict]:
    """Fetch the public US states GeoJSON and keep only catalog states, keyed by postal code."""
    resp = requests.get(url, timeout=60, headers={"User-Agent": config.USER_AGENT})
    resp.raise_for_status()
    return normalize_features(resp.json())


def catalog_rows() -> List[Dict[str, str]]:
    rows: List[Dict[str, str]] = []
    for region in REGIONS.values():
        for p in region.places:
            rows.append({
                "id": p.id,
                "name": p.name,
                "capital": p.capital,
                "abbreviation": p.abbreviation,
                "region": region.id,
            })
    return rows


def missing_states(shapes: Dict[str, Dict]) -> List[str]:
    return sorted(row["id"] for row in catalog_rows() if row["id"] not in shapes)


def save_outputs(shapes: Dict[str, Dict],
                 geojson_path: pathlib.Path = config.MAP_GEOJSON_FILE,
                 csv_path: pathlib.Path = CATALOG_CSV) -> None:
    # Sorted so regenerated files diff cleanly
    collection = {
        "type": "FeatureCollection",
        "generated_at": int(time.time()),
        "features": [shapes[k] for k in sorted(shapes)],
    }
    with open(geojson_path, "w", encoding="utf-8") as f:
        json.dump(collection, f, ensure_ascii=False)

    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["id", "name", "capital", "abbreviation", "region"])
        writer.writeheader()
        for r in catalog_rows():
            writer.writerow(r)


def main():
    shapes = download_state_shapes()
    save_outputs(shapes)
    missing = missing_states(shapes)
    print(f"Saved {len(shapes)} state shapes to {config.MAP_GEOJSON_FILE.name} and the catalog to {CATALOG_CSV.name}.")
    if missing:
        print(f"Missing shapes: {', '.join(missing)}")


if __name__ == "__main__":
    main()
