"""
Legacy Form Example

A spec written as a single JSON object runs as one form-encoded POST.
Caller parameters are a flat mapping and are bound as `$name` variables
in every filter.

Run: python -m examples.02-legacy-form.main
"""

import asyncio
import json
from pathlib import Path

from apiflow import Engine
from apiflow.runtime import FileSpecLoader, MemorySpecLoader

SPEC_DIR = Path(__file__).parent


async def main() -> None:
    document = json.loads((SPEC_DIR / "search.json").read_text())

    # Same document, served from memory and from disk
    for loader in (MemorySpecLoader({"mem://search": document}), FileSpecLoader(SPEC_DIR)):
        location = "mem://search" if isinstance(loader, MemorySpecLoader) else "search.json"
        engine = Engine(loader=loader)
        output = await engine.execute(location, {"q": "pipelines", "lang": "en"})
        print(f"{type(loader).__name__}: {output.decode()}")


if __name__ == "__main__":
    asyncio.run(main())
