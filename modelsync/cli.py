"""Command line entry point: `modelsync -i src/schema.rs -o src/models`."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from modelsync.config import GenerationConfig, load_config
from modelsync.errors import ModelsyncError
from modelsync.sync import check_files, generate_files


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate Diesel model files from a schema.rs file")
    parser.add_argument("-i", "--input", required=True, help="Input Diesel schema file (schema.rs)")
    parser.add_argument("-o", "--output", required=True, help="Output models directory")
    parser.add_argument("--config", help="YAML file with per-table options")
    parser.add_argument("--connection-type", help="Rust type used for the database connection")
    parser.add_argument("--schema-path", help="Module path of the schema, e.g. crate::schema::")
    parser.add_argument("--model-path", help="Module path of the models, e.g. crate::models::")
    parser.add_argument(
        "-g",
        "--autogenerated-columns",
        action="append",
        default=[],
        metavar="COLUMN",
        help="Column left out of the insertable struct for every table (repeatable)",
    )
    parser.add_argument("--tsync", action="store_true", help="Add #[tsync::tsync] to generated structs")
    parser.add_argument("--async", dest="use_async", action="store_true", help="Generate diesel_async functions")
    parser.add_argument("--check", action="store_true", help="Verify outputs are up-to-date without writing")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log more (-v info, -vv debug)")
    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def build_config(args: argparse.Namespace) -> GenerationConfig:
    config = load_config(Path(args.config)) if args.config else GenerationConfig()

    for key in ("connection_type", "schema_path", "model_path"):
        value = getattr(args, key)
        if value:
            setattr(config, key, value)

    defaults = config.default_table_options
    if args.autogenerated_columns:
        defaults = defaults.with_autogenerated_columns(args.autogenerated_columns)
    if args.tsync:
        defaults = defaults.with_tsync()
    if args.use_async:
        defaults = defaults.with_async()
    config.default_table_options = defaults
    return config


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    input_path = Path(args.input)
    output_dir = Path(args.output)

    try:
        config = build_config(args)
        if args.check:
            problems = check_files(input_path, output_dir, config)
            for line in problems:
                print(line, file=sys.stderr)
            if problems:
                print(f"[check] {output_dir} is out of date", file=sys.stderr)
                return 1
            print(f"[check] {output_dir} is up to date")
            return 0

        report = generate_files(input_path, output_dir, config)
    except ModelsyncError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    for name in report.written:
        print(f"Generated {output_dir / name}")
    for name in report.removed:
        print(f"Removed {output_dir / name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
