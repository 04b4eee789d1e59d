"""Export the payout admin API schema for client generation and review."""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bountypay.core.config import get_settings
from bountypay.main import create_application

DEFAULT_DESTINATION = ROOT / "docs" / "payout-admin-openapi.json"


def export_schema(destination: Path = DEFAULT_DESTINATION) -> Path:
    settings = get_settings()
    schema = create_application(settings).openapi()
    # admin routes authenticate with a shared secret header
    schema.setdefault("components", {})["securitySchemes"] = {
        "AdminToken": {"type": "apiKey", "in": "header", "name": "X-Admin-Token"}
    }
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(schema, indent=2, sort_keys=True), encoding="utf-8")
    return destination


def main() -> None:
    destination = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DESTINATION
    written = export_schema(destination)
    print(f"{get_settings().app_name} {get_settings().version} schema written to {written}")


if __name__ == "__main__":
    main()
