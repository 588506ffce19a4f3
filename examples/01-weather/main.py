"""
Weather Example

Two chained API calls described by a local JSON spec:
1. Geocode a city name
2. Fetch the current temperature for its coordinates

Run: python -m examples.01-weather.main Oslo
"""

import asyncio
import logging
import sys
from pathlib import Path

from apiflow import Engine
from apiflow.config import AppSettings
from apiflow.runtime import FileSpecLoader

SPEC_DIR = Path(__file__).parent


async def main(city: str) -> None:
    engine = Engine(
        loader=FileSpecLoader(SPEC_DIR),
        settings=AppSettings(run_timeout=20.0),
    )

    print(f"Running weather.json for {city!r}...")
    output = await engine.execute("weather.json", {"query": {"city": city}})
    print(output.decode())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "Oslo"))
