"""Export the OpenAPI schema of the notes service.

Usage:
    python scripts/export_openapi.py              # writes docs/openapi.json
    python scripts/export_openapi.py --stdout     # prints to stdout
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from notesapp.main import app  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Export the notes service OpenAPI schema")
    parser.add_argument("--output", default="docs/openapi.json", help="Output file path")
    parser.add_argument("--stdout", action="store_true", help="Print to stdout")
    args = parser.parse_args()

    schema = app.openapi()

    if args.stdout:
        print(json.dumps(schema, indent=2))
        return

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(schema, f, indent=2)

    print(f"OpenAPI schema exported to {output_path}")
    print(f"  Paths: {len(schema.get('paths', {}))}")


if __name__ == "__main__":
    main()
