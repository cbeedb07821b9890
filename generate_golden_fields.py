#!/usr/bin/env python3
"""
Fill expect.output, expect.state (or expect.error) and expect.listing of a golden YAML
by running its program.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

import os
import sys

import yaml

from errors import IntcodeError, NoOutputProduced
from isa import disassemble
from loader import parse_program
from processor import build_machine


def run_golden(doc):
    """Run the record's program; return (outputs, final state, error name or None)."""
    cu = build_machine(str(doc["source"]), doc.get("input") or [], doc.get("config"))
    for addr, value in (doc.get("patch") or {}).items():
        cu.patch(int(addr), int(value))
    try:
        if doc.get("mode", "complete") == "outputs":
            while True:
                try:
                    cu.run_to_next_output()
                except NoOutputProduced:
                    break
        else:
            cu.run_to_completion()
    except IntcodeError as e:
        return cu.output, cu.state.value, type(e).__name__
    return cu.output, cu.state.value, None


def fill_golden(doc):
    """Update the expect block of `doc` in place and return it."""
    if "expect" not in doc:
        doc["expect"] = {}
    target = doc["expect"]

    output, state, error = run_golden(doc)
    target["output"] = output
    target["state"] = state
    if error is not None:
        target["error"] = error
    else:
        target.pop("error", None)
    target["listing"] = "\n".join(disassemble(parse_program(str(doc["source"])))) + "\n"
    return doc


def main(path):
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)

    if not isinstance(doc, dict) or "source" not in doc:
        print("No 'source' found in YAML, nothing to run")
        sys.exit(2)

    fill_golden(doc)

    # write back YAML (use block style where possible)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with output, state and listing.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
