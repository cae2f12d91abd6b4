"""File layout planner - maps a module's contents onto output paths.

Planning is a pure, deterministic function of the module: the same module
always yields the same entries, in the same order, with the same paths.
"""

from collections.abc import Callable, Iterable, Iterator
from enum import Enum

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from modsetup.core.errors import PlanningCollisionError
from modsetup.modules.models import EmbeddedPayload, Module, TypeDefinition
from modsetup.planning.naming import (
    clean_up_file_name,
    escape_file_name,
    is_culture_name,
    path_key,
)

METADATA_PATH = "Properties/AssemblyInfo.cs"
DEFAULT_LIBRARY_PREFIX = "Terraria.Libraries."
CULTURE_QUALIFIER = "Main"

TypePredicate = Callable[[TypeDefinition], bool]


# =============================================================================
# PLAN MODELS
# =============================================================================


class ContentKind(str, Enum):
    """Where a planned file's content comes from."""

    SOURCE = "source"
    RESOURCE = "resource"
    METADATA = "metadata"


class FilePlanEntry(BaseModel):
    """A single planned output file and the content that will populate it."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Relative POSIX path")
    kind: ContentKind
    types: tuple[TypeDefinition, ...] = ()
    payload: EmbeddedPayload | None = None

    @property
    def key(self) -> str:
        return path_key(self.path)

    @property
    def item_type(self) -> str:
        """Role tag used by build descriptors."""
        if self.kind is ContentKind.RESOURCE:
            return "EmbeddedResource"
        return "Compile"


class FilePlan:
    """
    Planned files of one module, unique under case-insensitive comparison.

    Example:
        >>> plan = FilePlan("Terraria")
        >>> plan.add(FilePlanEntry(path="N/Foo.cs", kind=ContentKind.SOURCE))
        >>> "n/foo.cs" in plan
        True
    """

    def __init__(self, module_name: str) -> None:
        self.module_name = module_name
        self._entries: dict[str, FilePlanEntry] = {}

    def add(self, entry: FilePlanEntry) -> None:
        """Add an entry.

        Raises:
            PlanningCollisionError: If the path is already planned.
        """
        existing = self._entries.get(entry.key)
        if existing is not None:
            raise PlanningCollisionError(entry.path, existing.path)
        self._entries[entry.key] = entry

    def get(self, path: str) -> FilePlanEntry | None:
        return self._entries.get(path_key(path))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path_key(path) in self._entries

    def __iter__(self) -> Iterator[FilePlanEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def of_kind(self, kind: ContentKind) -> list[FilePlanEntry]:
        return [e for e in self._entries.values() if e.kind is kind]

    @property
    def sources(self) -> list[FilePlanEntry]:
        return self.of_kind(ContentKind.SOURCE)

    @property
    def resources(self) -> list[FilePlanEntry]:
        return self.of_kind(ContentKind.RESOURCE)

    @property
    def metadata(self) -> FilePlanEntry | None:
        entries = self.of_kind(ContentKind.METADATA)
        return entries[0] if entries else None

    def path_of_payload(self, payload_name: str) -> str | None:
        """Planned path of the resource extracted from ``payload_name``."""
        for entry in self.resources:
            if entry.payload is not None and entry.payload.name == payload_name:
                return entry.path
        return None


class GlobalFileSet:
    """
    Paths claimed across every module of one run (case-insensitive).

    The first claim of a path wins; later modules do not regenerate it.
    """

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}

    def claim(self, path: str, owner: str = "") -> bool:
        """Claim ``path`` for ``owner``; False if it was claimed before."""
        key = path_key(path)
        if key in self._owners:
            return False
        self._owners[key] = owner
        return True

    def owner_of(self, path: str) -> str | None:
        return self._owners.get(path_key(path))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path_key(path) in self._owners

    def __len__(self) -> int:
        return len(self._owners)


# =============================================================================
# NAMING RULES
# =============================================================================


def include_type_in_project(type_def: TypeDefinition) -> bool:
    """Default "should include in project" predicate for top-level types."""
    if type_def.name == "<Module>" or type_def.is_nested:
        return False
    if type_def.is_compiler_generated:
        return False
    if (
        type_def.namespace == "XamlGeneratedNamespace"
        and type_def.name == "GeneratedInternalTypeHelper"
    ):
        return False
    return True


def type_file_path(type_def: TypeDefinition) -> str:
    """
    Relative source path of a type.

    Example:
        >>> type_file_path(TypeDefinition(name="Main", namespace="Terraria"))
        'Terraria/Main.cs'
    """
    file_name = clean_up_file_name(type_def.name) + ".cs"
    if type_def.namespace:
        return f"{clean_up_file_name(type_def.namespace)}/{file_name}"
    return file_name


def resource_file_path(
    name: str,
    dependency_names: Iterable[str] = (),
    library_prefix: str = DEFAULT_LIBRARY_PREFIX,
) -> str:
    """
    Relative output path of an embedded resource.

    Example:
        >>> resource_file_path("Terraria.Libraries.ReLogic.ReLogic.dll", ["ReLogic"])
        'Terraria.Libraries/ReLogic/ReLogic.dll'
        >>> resource_file_path("Terraria.Localization.Content.en-US.json")
        'Terraria.Localization.Content.Main.en-US.json'
    """
    path = name

    if library_prefix:
        path = path.replace(library_prefix, library_prefix.rstrip(".") + "/")

    if path.endswith(".dll"):
        matches = [d for d in dependency_names if path.endswith(f"{d}.dll")]
        if matches:
            dependency = max(matches, key=lambda d: (len(d), d))
            cut = len(path) - len(dependency) - len(".dll") - 1
            if cut > 0:
                path = f"{path[:cut]}/{dependency}.dll"

    directory, slash, file_name = path.rpartition("/")
    stem, dot, extension = file_name.rpartition(".")
    if dot:
        base, subdot, subextension = stem.rpartition(".")
        if subdot and is_culture_name(subextension):
            file_name = f"{base}.{CULTURE_QUALIFIER}.{subextension}.{extension}"
            path = f"{directory}{slash}{file_name}"

    return "/".join(escape_file_name(segment) for segment in path.split("/"))


# =============================================================================
# PLANNER
# =============================================================================


class FileLayoutPlanner:
    """
    Map each eligible type and each embedded resource to a unique path.

    Types whose paths collide case-insensitively (partial type families,
    generic arity variants) are grouped into one entry and decompiled
    together. Every plan ends with the module metadata entry.

    Example:
        >>> planner = FileLayoutPlanner()
        >>> plan = planner.plan(module)
        >>> [e.path for e in plan.sources][:2]
        ['Terraria/Main.cs', 'Terraria/Player.cs']
    """

    def __init__(
        self,
        include_type: TypePredicate = include_type_in_project,
        library_prefix: str = DEFAULT_LIBRARY_PREFIX,
        metadata_path: str = METADATA_PATH,
    ) -> None:
        self.include_type = include_type
        self.library_prefix = library_prefix
        self.metadata_path = metadata_path

    def plan(self, module: Module) -> FilePlan:
        """Plan every output file of ``module``."""
        logger.info(f"Planning files for {module.name}")
        plan = FilePlan(module.name)

        for path, types in self._group_types(module.types):
            plan.add(FilePlanEntry(path=path, kind=ContentKind.SOURCE, types=types))

        dependency_names = [d.name for d in module.dependencies]
        for payload in module.payloads:
            path = resource_file_path(payload.name, dependency_names, self.library_prefix)
            plan.add(FilePlanEntry(path=path, kind=ContentKind.RESOURCE, payload=payload))

        plan.add(FilePlanEntry(path=self.metadata_path, kind=ContentKind.METADATA))

        logger.info(
            f"Planned {len(plan)} files for {module.name}: "
            f"{len(plan.sources)} sources, {len(plan.resources)} resources"
        )
        return plan

    def _group_types(
        self,
        types: Iterable[TypeDefinition],
    ) -> list[tuple[str, tuple[TypeDefinition, ...]]]:
        groups: dict[str, tuple[str, list[TypeDefinition]]] = {}
        for type_def in types:
            if not self.include_type(type_def):
                continue
            path = type_file_path(type_def)
            groups.setdefault(path_key(path), (path, []))[1].append(type_def)
        return [(path, tuple(members)) for path, members in groups.values()]
