"""File layout planning - deterministic output paths for module contents."""

from modsetup.planning.layout import (
    METADATA_PATH,
    ContentKind,
    FileLayoutPlanner,
    FilePlan,
    FilePlanEntry,
    GlobalFileSet,
    include_type_in_project,
    resource_file_path,
    type_file_path,
)
from modsetup.planning.naming import (
    clean_up_file_name,
    escape_file_name,
    is_culture_name,
    path_key,
)

__all__ = [
    "METADATA_PATH",
    "ContentKind",
    "FileLayoutPlanner",
    "FilePlan",
    "FilePlanEntry",
    "GlobalFileSet",
    "include_type_in_project",
    "resource_file_path",
    "type_file_path",
    "clean_up_file_name",
    "escape_file_name",
    "is_culture_name",
    "path_key",
]
