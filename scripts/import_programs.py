from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import base58
import yaml


def load_programs_yaml(path: Path) -> dict:
    if not path.exists():
        return {"programs": []}
    return yaml.safe_load(path.read_text()) or {"programs": []}


def save_programs_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))


def is_program_id(value: str) -> bool:
    try:
        return len(base58.b58decode(value)) == 32
    except ValueError:
        return False


def parse_program_ids(payload: Any) -> list[str]:
    # Accept a list of strings, list of objects with 'address', or newline-separated strings
    if isinstance(payload, list):
        if all(isinstance(x, str) for x in payload):
            return [x.strip() for x in payload if x and x.strip()]
        if all(isinstance(x, dict) for x in payload):
            ids: list[str] = []
            for row in payload:
                a = row.get("address") or row.get("program_id") or row.get("programId")
                if a:
                    ids.append(a.strip())
            return ids
    if isinstance(payload, str):
        return [line.strip() for line in payload.splitlines() if line.strip()]
    return []


def upsert(programs: list[dict], address: str, notes: str | None) -> bool:
    for p in programs:
        if p.get("address") == address:
            if notes and not p.get("notes"):
                p["notes"] = notes
            return False
    item = {"address": address}
    if notes:
        item["notes"] = notes
    programs.append(item)
    return True


def main() -> int:
    p = argparse.ArgumentParser(description="Import program ids into config/programs.yaml")
    p.add_argument("--input", "-i", help="Input file (JSON array or newline-separated ids). If omitted, reads stdin.")
    p.add_argument("--programs-yaml", default="config/programs.yaml", help="Path to programs.yaml")
    p.add_argument("--notes", default=None, help="Notes stored with newly added programs")
    p.add_argument("--replace", action="store_true", help="Drop existing programs before importing")
    args = p.parse_args()

    if args.input:
        raw = Path(args.input).read_text()
    else:
        raw = sys.stdin.read()

    try:
        payload = json.loads(raw)
    except ValueError:
        payload = raw

    ids = parse_program_ids(payload)
    invalid = [x for x in ids if not is_program_id(x)]
    if invalid:
        print(f"Invalid program ids: {', '.join(invalid)}", file=sys.stderr)
        return 1
    if not ids:
        print("No program ids parsed from input", file=sys.stderr)
        return 1

    path = Path(args.programs_yaml)
    data = load_programs_yaml(path)
    programs: list[dict] = [] if args.replace else data.get("programs", [])
    added = sum(1 for a in ids if upsert(programs, a, args.notes))

    data["programs"] = programs
    save_programs_yaml(path, data)
    print(f"Imported {added} new program ids into {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
