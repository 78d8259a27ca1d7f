"""Incremental loading of modules into a document store."""

from .engine import ModulesLoader
from .filter import PatternFilter
from .finder import (
    SPECIAL_DIRECTORIES,
    DiscoveredFile,
    ModuleCategory,
    ModulesFinder,
    classify,
    logical_uri,
)
from .options import LoadOptions, load_options_from_json, parse_permissions
from .state import ModuleStateStore, default_state_file
from .tokens import TokenReplacer
from .uploader import BatchUploader, UploadProgress, UploadReport, plan_batches

__all__ = [
    "ModulesLoader",
    "PatternFilter",
    "ModulesFinder",
    "DiscoveredFile",
    "ModuleCategory",
    "SPECIAL_DIRECTORIES",
    "classify",
    "logical_uri",
    "LoadOptions",
    "load_options_from_json",
    "parse_permissions",
    "ModuleStateStore",
    "default_state_file",
    "TokenReplacer",
    "BatchUploader",
    "UploadProgress",
    "UploadReport",
    "plan_batches",
]
