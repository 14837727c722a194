"""Generate Diesel model files from a schema.rs and keep them in sync."""

from modelsync.config import GenerationConfig, TableOptions, load_config
from modelsync.errors import ConfigError, FilesystemError, ModelsyncError, ParseError
from modelsync.marked_file import FILE_SIGNATURE, MarkedFile
from modelsync.parser import parse
from modelsync.sync import SyncReport, check_files, generate_code, generate_files

__all__ = [
    "FILE_SIGNATURE",
    "ConfigError",
    "FilesystemError",
    "GenerationConfig",
    "MarkedFile",
    "ModelsyncError",
    "ParseError",
    "SyncReport",
    "TableOptions",
    "check_files",
    "generate_code",
    "generate_files",
    "load_config",
    "parse",
]
