"""Generate model files and reconcile them with an output directory tree.

Layout of the output directory:

    <output>/mod.rs                one `pub mod <table>;` line per table
    <output>/<table>/generated.rs  owned by the generator (signature stamped)
    <output>/<table>/mod.rs        `pub mod generated;` + `pub use generated::*;`

Hand-written lines in either mod.rs survive every run. Table directories
whose generated.rs carries the signature but whose table is gone (or now
ignored) are cleaned up.
"""

from __future__ import annotations

import dataclasses
import difflib
import logging
from pathlib import Path

from modelsync.code import emit
from modelsync.config import GenerationConfig, TableOptions
from modelsync.errors import FileEncodingError, FilesystemError
from modelsync.marked_file import MarkedFile
from modelsync.parser import TableDeclaration, parse

logger = logging.getLogger(__name__)

GENERATED_FILE = "generated.rs"
MOD_FILE = "mod.rs"
GENERATED_MODULE = "generated"


@dataclasses.dataclass(frozen=True)
class GeneratedTable:
    table: TableDeclaration
    code: str

    @property
    def name(self) -> str:
        return self.table.name


@dataclasses.dataclass
class SyncReport:
    written: list[str] = dataclasses.field(default_factory=list)
    removed: list[str] = dataclasses.field(default_factory=list)


def missing_autogenerated_columns(table: TableDeclaration, options: TableOptions) -> list[str]:
    names = set(table.column_names)
    return [c for c in options.get_autogenerated_columns() if c not in names]


def generate_code(schema_text: str, config: GenerationConfig) -> list[GeneratedTable]:
    generated: list[GeneratedTable] = []
    for table in parse(schema_text):
        options = config.table(table.name)
        if options.get_ignore():
            logger.info("skipping ignored table %s", table.name)
            continue
        for column in missing_autogenerated_columns(table, options):
            logger.warning("autogenerated column `%s` is not a column of table `%s`", column, table.name)
        generated.append(GeneratedTable(table=table, code=emit(table, options, config)))
    return generated


def read_schema(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise FileEncodingError(path, "Could not decode schema file as UTF-8") from exc
    except OSError as exc:
        raise FilesystemError(path, f"Could not read schema file ({exc.strerror or exc})") from exc


def ensure_directory(path: Path) -> None:
    if not path.exists():
        try:
            path.mkdir()
        except OSError as exc:
            raise FilesystemError(path, f"Could not create directory ({exc.strerror or exc})") from exc
        logger.debug("created directory %s", path)
    elif not path.is_dir():
        raise FilesystemError(path, "Expected a directory")


def list_subdirectories(path: Path) -> list[Path]:
    """Real subdirectories of `path`; symlinks are never followed."""
    try:
        return sorted(item for item in path.iterdir() if item.is_dir() and not item.is_symlink())
    except OSError as exc:
        raise FilesystemError(path, f"Could not read directory ({exc.strerror or exc})") from exc


def is_managed_directory(path: Path) -> bool:
    generated_path = path / GENERATED_FILE
    if not generated_path.is_file():
        return False
    try:
        return MarkedFile(generated_path).has_signature()
    except FileEncodingError:
        logger.info("skipping %s: %s is not UTF-8, so it was not generated", path, GENERATED_FILE)
        return False


def find_orphans(output_dir: Path, expected: set[str]) -> list[Path]:
    """Managed table directories whose name matches no expected table (case-insensitive)."""
    expected_lower = {name.lower() for name in expected}
    return [
        item
        for item in list_subdirectories(output_dir)
        if is_managed_directory(item) and item.name.lower() not in expected_lower
    ]


def write_table(output_dir: Path, generated: GeneratedTable) -> None:
    table_dir = output_dir / generated.name
    ensure_directory(table_dir)

    generated_rs = MarkedFile(table_dir / GENERATED_FILE)
    generated_rs.contents = generated.code
    generated_rs.ensure_signature()
    generated_rs.write()

    table_mod_rs = MarkedFile(table_dir / MOD_FILE)
    table_mod_rs.ensure_module_line(GENERATED_MODULE)
    table_mod_rs.ensure_reexport_line(GENERATED_MODULE)
    table_mod_rs.write()


def remove_table(table_dir: Path) -> None:
    MarkedFile(table_dir / GENERATED_FILE).delete()

    table_mod_path = table_dir / MOD_FILE
    if table_mod_path.exists():
        table_mod_rs = MarkedFile(table_mod_path)
        table_mod_rs.remove_module_line(GENERATED_MODULE)
        table_mod_rs.remove_reexport_line(GENERATED_MODULE)
        if table_mod_rs.contents.strip():
            table_mod_rs.write()
        else:
            table_mod_rs.delete()

    try:
        is_empty = next(table_dir.iterdir(), None) is None
        if is_empty:
            table_dir.rmdir()
    except OSError as exc:
        raise FilesystemError(table_dir, f"Could not delete directory ({exc.strerror or exc})") from exc
    if is_empty:
        logger.debug("deleted directory %s", table_dir)
    else:
        logger.info("kept %s: it still holds hand-written files", table_dir)


def sync_tables(generated: list[GeneratedTable], output_dir: Path) -> SyncReport:
    report = SyncReport()
    ensure_directory(output_dir)
    mod_rs = MarkedFile(output_dir / MOD_FILE)

    # pass 1: write code for every current table
    for item in generated:
        write_table(output_dir, item)
        mod_rs.ensure_module_line(item.name)
        report.written.append(item.name)
        logger.info("generated %s", output_dir / item.name / GENERATED_FILE)

    # pass 2: remove code for tables that are gone
    for table_dir in find_orphans(output_dir, {item.name for item in generated}):
        remove_table(table_dir)
        mod_rs.remove_module_line(table_dir.name)
        report.removed.append(table_dir.name)
        logger.info("removed generated code for %s", table_dir.name)

    mod_rs.write()
    return report


def generate_files(input_path: Path, output_dir: Path, config: GenerationConfig) -> SyncReport:
    """Parse `input_path`, then write and reconcile the model tree under `output_dir`."""
    generated = generate_code(read_schema(input_path), config)
    return sync_tables(generated, output_dir)


def unified_diff(path: Path, existing: str, generated: str, limit: int = 200) -> list[str]:
    diff = difflib.unified_diff(
        existing.splitlines(),
        generated.splitlines(),
        fromfile=str(path),
        tofile=f"generated:{path}",
        lineterm="",
    )
    lines: list[str] = []
    for idx, line in enumerate(diff):
        if idx > limit:
            lines.append("... (diff truncated)")
            break
        lines.append(line)
    return lines


def check_files(input_path: Path, output_dir: Path, config: GenerationConfig) -> list[str]:
    """Describe how `output_dir` differs from what `generate_files` would produce, without writing."""
    generated = generate_code(read_schema(input_path), config)
    problems: list[str] = []

    if not output_dir.is_dir():
        return [f"missing output directory: {output_dir}"]

    mod_rs = MarkedFile(output_dir / MOD_FILE)
    for item in generated:
        table_dir = output_dir / item.name
        generated_path = table_dir / GENERATED_FILE
        if not generated_path.is_file():
            problems.append(f"missing file: {generated_path}")
        else:
            existing = MarkedFile(generated_path).contents
            if existing != item.code:
                problems.append(f"drift detected: {generated_path}")
                problems.extend(unified_diff(generated_path, existing, item.code))

        table_mod_rs = MarkedFile(table_dir / MOD_FILE)
        if not table_mod_rs.has_module_line(GENERATED_MODULE):
            problems.append(f"missing `pub mod {GENERATED_MODULE};` in {table_mod_rs.path}")
        if not table_mod_rs.has_reexport_line(GENERATED_MODULE):
            problems.append(f"missing `pub use {GENERATED_MODULE}::*;` in {table_mod_rs.path}")
        if not mod_rs.has_module_line(item.name):
            problems.append(f"missing `pub mod {item.name};` in {mod_rs.path}")

    for table_dir in find_orphans(output_dir, {item.name for item in generated}):
        problems.append(f"stale generated code: {table_dir / GENERATED_FILE}")

    return problems
