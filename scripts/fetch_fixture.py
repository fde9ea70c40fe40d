import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import json
import os
from dataclasses import asdict

from booking_engine.network.feed_client import fetch_feed
from booking_engine.normalizers.ical import normalize_feed

# === FIXTURE FETCH + SAVE ===


def save_fixture(data: bytes, filename: str) -> None:
    os.makedirs("tests/fixtures", exist_ok=True)
    path = f"tests/fixtures/{filename}"
    with open(path, "wb") as f:
        f.write(data)
    print(f"Saved {filename} ({len(data)} bytes)")


def fetch_calendar_fixture(url: str, prefix: str) -> None:
    """Save a live feed as <prefix>.ics plus its normalized events as JSON."""
    response = fetch_feed(url)
    body = response.body or b""
    save_fixture(body, f"{prefix}.ics")

    events = [asdict(event) for event in normalize_feed(body)]
    save_fixture(
        json.dumps(events, indent=2, default=str).encode("utf-8"),
        f"{prefix}_normalized.json",
    )


# === CLI ===

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fetch and save an iCal feed fixture.")
    parser.add_argument("url", help="iCal export URL of the external calendar")
    parser.add_argument("--prefix", default="ical_feed", help="Fixture file name prefix")
    args = parser.parse_args()

    fetch_calendar_fixture(args.url, args.prefix)
