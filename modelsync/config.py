"""Generation options: per-table overrides with field-by-field defaults."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import yaml

from modelsync.errors import ConfigError

DEFAULT_CONNECTION_TYPE = "diesel::pg::PgConnection"
DEFAULT_SCHEMA_PATH = "crate::schema::"
DEFAULT_MODEL_PATH = "crate::models::"


@dataclasses.dataclass(frozen=True)
class TableOptions:
    ignore: bool | None = None
    # Names of autogenerated columns that are left out of the insertable struct
    # (for example `created_at`, `updated_at`).
    autogenerated_columns: tuple[str, ...] | None = None
    # Adds #[tsync::tsync] to generated structs.
    tsync: bool | None = None
    # Generates diesel_async functions.
    use_async: bool | None = None

    def get_ignore(self) -> bool:
        return bool(self.ignore)

    def get_autogenerated_columns(self) -> tuple[str, ...]:
        return self.autogenerated_columns or ()

    def get_tsync(self) -> bool:
        return bool(self.tsync)

    def get_async(self) -> bool:
        return bool(self.use_async)

    def ignore_table(self) -> TableOptions:
        return dataclasses.replace(self, ignore=True)

    def with_tsync(self) -> TableOptions:
        return dataclasses.replace(self, tsync=True)

    def with_async(self) -> TableOptions:
        return dataclasses.replace(self, use_async=True)

    def with_autogenerated_columns(self, columns) -> TableOptions:
        return dataclasses.replace(self, autogenerated_columns=tuple(columns))

    def apply_defaults(self, other: TableOptions) -> TableOptions:
        """Fill every unset field from `other`, one field at a time."""
        return TableOptions(
            **{
                f.name: getattr(other, f.name) if getattr(self, f.name) is None else getattr(self, f.name)
                for f in dataclasses.fields(self)
            }
        )


@dataclasses.dataclass
class GenerationConfig:
    table_options: dict[str, TableOptions] = dataclasses.field(default_factory=dict)
    default_table_options: TableOptions = dataclasses.field(default_factory=TableOptions)
    connection_type: str = DEFAULT_CONNECTION_TYPE
    schema_path: str = DEFAULT_SCHEMA_PATH
    model_path: str = DEFAULT_MODEL_PATH

    def table(self, name: str) -> TableOptions:
        options = self.table_options.get(name, self.default_table_options)
        return options.apply_defaults(self.default_table_options)


OPTION_KEYS = {
    "ignore": "ignore",
    "autogenerated_columns": "autogenerated_columns",
    "tsync": "tsync",
    "async": "use_async",
    "use_async": "use_async",
}
TOP_LEVEL_KEYS = {"connection_type", "schema_path", "model_path", "defaults", "tables"}


def parse_table_options(raw: dict | None, where: str) -> TableOptions:
    if raw is None:
        return TableOptions()
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected a mapping of options, got {type(raw).__name__}")

    values: dict = {}
    for key, value in raw.items():
        field_name = OPTION_KEYS.get(key)
        if field_name is None:
            raise ConfigError(f"{where}: unknown option `{key}`")
        if field_name == "autogenerated_columns":
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{where}: `{key}` must be a list of column names")
            values[field_name] = tuple(value)
        else:
            if not isinstance(value, bool):
                raise ConfigError(f"{where}: `{key}` must be true or false")
            values[field_name] = value
    return TableOptions(**values)


def config_from_dict(raw: dict) -> GenerationConfig:
    unknown = sorted(set(raw) - TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    tables_raw = raw.get("tables") or {}
    if not isinstance(tables_raw, dict):
        raise ConfigError("`tables` must map table names to options")

    config = GenerationConfig(
        table_options={str(name): parse_table_options(opts, f"tables.{name}") for name, opts in tables_raw.items()},
        default_table_options=parse_table_options(raw.get("defaults"), "defaults"),
    )
    for key in ("connection_type", "schema_path", "model_path"):
        if raw.get(key) is None:
            continue
        if not isinstance(raw[key], str):
            raise ConfigError(f"`{key}` must be a string")
        setattr(config, key, raw[key])
    return config


def load_config(path: Path) -> GenerationConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"could not read config file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in '{path}': {exc}") from exc
    if raw is None:
        return GenerationConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"'{path}': expected a mapping at the top level")
    return config_from_dict(raw)
