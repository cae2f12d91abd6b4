"""Compiled modules - models, parsing, reading and dependency resolution."""

from modsetup.modules.models import (
    AssemblyVersion,
    DependencyRef,
    EmbeddedPayload,
    Module,
    ModuleKind,
    Resolution,
    ResolutionOrigin,
    TypeDefinition,
)
from modsetup.modules.parser import DnfileModuleParser, ModuleParser
from modsetup.modules.reader import ModuleReader
from modsetup.modules.resolver import (
    EmbeddedDependencyResolver,
    ResolverStats,
    SearchPathResolver,
)
from modsetup.modules.typesystem import TypeSystem

__all__ = [
    # Models
    "AssemblyVersion",
    "DependencyRef",
    "EmbeddedPayload",
    "Module",
    "ModuleKind",
    "Resolution",
    "ResolutionOrigin",
    "TypeDefinition",
    # Parsing
    "ModuleParser",
    "DnfileModuleParser",
    # Reading
    "ModuleReader",
    # Resolution
    "EmbeddedDependencyResolver",
    "SearchPathResolver",
    "ResolverStats",
    "TypeSystem",
]
