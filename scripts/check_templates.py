#!/usr/bin/env python3
"""
Validate an approval configuration set and print what it defines.

Usage:
    python scripts/check_templates.py [config_set_directory] [--strict]

If no directory is given, checks approval_config/sets/default/.

The script:
  1. Loads the YAML fragments (root, categories, templates, engine)
  2. Validates them, printing every error and warning
  3. Compiles the set and lists categories and route templates

Exit status is 0 when the set compiles, 1 on validation errors (or on
warnings with --strict), 2 when the directory does not exist.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from approval_config import DEFAULT_CONFIG_DIR
from approval_config.compiler import compile_config
from approval_config.loader import load_config_set
from approval_config.validator import validate_configuration


def check(fragment_dir: Path, strict: bool = False) -> int:
    """Load, validate and compile one set. Returns the exit status."""
    print(f"Loading fragments from: {fragment_dir}")
    config_set = load_config_set(fragment_dir)
    print(f"  config_id:  {config_set.config_id}")
    print(f"  version:    {config_set.version}")
    print(f"  checksum:   {config_set.checksum[:16]}...")

    result = validate_configuration(config_set)
    for err in result.errors:
        print(f"  ERROR: {err}")
    for w in result.warnings:
        print(f"  WARNING: {w}")
    if not result.is_valid:
        print("VALIDATION FAILED")
        return 1
    if strict and result.warnings:
        print("VALIDATION FAILED (warnings with --strict)")
        return 1

    compiled = compile_config(config_set)
    print(f"Categories ({len(compiled.categories)}):")
    for category in compiled.categories:
        state = "active" if category.is_active else "inactive"
        print(f"  {category.code:<16} {state:<9} default={category.default_template}")
    print(f"Templates ({len(compiled.templates)}):")
    for template in compiled.templates:
        print(f"  {template.template_id} [{template.category}]")
        for stage in template.stages:
            print(
                f"    {stage.order_index}. {stage.name} "
                f"({stage.stage_type.value}, {stage.mode.value}, {stage.rule.value}, "
                f"{len(stage.approvers)} approver(s))"
            )
    print("OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate an approval configuration set")
    parser.add_argument("directory", nargs="?", type=Path, default=DEFAULT_CONFIG_DIR,
                        help="Configuration set directory")
    parser.add_argument("--strict", action="store_true",
                        help="Treat warnings as errors")
    args = parser.parse_args(argv)

    if not args.directory.is_dir():
        print(f"Error: directory not found: {args.directory}", file=sys.stderr)
        return 2

    return check(args.directory, strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
