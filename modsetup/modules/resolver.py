"""Dependency resolver - finds referenced modules for a module being read.

Lookups prefer payloads embedded inside the module being read, fall back
to on-disk search directories, and are memoized per resolver instance.
"""

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from modsetup.core.errors import ModuleReadError
from modsetup.modules.models import (
    DependencyRef,
    EmbeddedPayload,
    Module,
    Resolution,
    ResolutionOrigin,
)
from modsetup.modules.parser import ModuleParser

# =============================================================================
# STATS
# =============================================================================


@dataclass
class ResolverStats:
    """Call counters for one resolver instance."""

    lookups: int = 0
    cache_hits: int = 0
    embedded_searches: int = 0
    search_path_lookups: int = 0
    skipped: int = 0


# =============================================================================
# SEARCH PATH RESOLVER
# =============================================================================


class SearchPathResolver:
    """
    Resolve references against a list of on-disk directories.

    Each directory is probed for ``<name>.dll`` and then ``<name>.exe``;
    the first file that parses wins.

    Example:
        >>> resolver = SearchPathResolver([Path("C:/Games/Terraria")], parser)
        >>> resolver.find(DependencyRef(name="FNA"))
        Module(name='FNA', ...)
    """

    EXTENSIONS = (".dll", ".exe")

    def __init__(self, directories: Iterable[Path], parser: ModuleParser) -> None:
        self.directories = [Path(d) for d in directories]
        self.parser = parser

    def add_directory(self, directory: Path) -> None:
        if Path(directory) not in self.directories:
            self.directories.append(Path(directory))

    def find(self, reference: DependencyRef) -> Module | None:
        """Return the first module matching ``reference`` or None."""
        for directory in self.directories:
            for extension in self.EXTENSIONS:
                candidate = directory / f"{reference.name}{extension}"
                if not candidate.is_file():
                    continue
                try:
                    return self.parser.parse_file(candidate)
                except ModuleReadError as e:
                    logger.warning(f"Ignoring unreadable candidate {candidate}: {e}")
        return None


# =============================================================================
# EMBEDDED DEPENDENCY RESOLVER
# =============================================================================


class EmbeddedDependencyResolver:
    """
    Resolve dependencies of one module, preferring its embedded payloads.

    One instance is created per module read. Results (including misses)
    are cached under the reference's full name, and the whole
    lookup-or-populate sequence runs under a single lock so concurrent
    callers asking for the same name never both take the expensive path.

    Attributes:
        base_module: The module whose payloads are searched first.
        stats: Call counters, mostly useful for diagnostics and tests.

    Example:
        >>> resolver = EmbeddedDependencyResolver(search_path, parser)
        >>> resolver.bind(module)
        >>> resolver.resolve(module.dependencies[0]).origin
        <ResolutionOrigin.EMBEDDED: 'embedded'>
    """

    def __init__(
        self,
        search_path: SearchPathResolver,
        parser: ModuleParser,
        base_library_name: str = "mscorlib",
        base_library_major_version: int = 4,
    ) -> None:
        self.search_path = search_path
        self.parser = parser
        self.base_library_name = base_library_name
        self.base_library_major_version = base_library_major_version
        self.base_module: Module | None = None
        self.stats = ResolverStats()
        self._cache: dict[str, Resolution] = {}
        self._lock = threading.Lock()

    def bind(self, module: Module) -> None:
        """Bind the module whose payloads are searched first."""
        self.base_module = module
        module.bind_resolver(self)

    @property
    def cached(self) -> dict[str, Resolution]:
        """Snapshot of the cache, keyed by full name."""
        with self._lock:
            return dict(self._cache)

    def resolve(self, reference: DependencyRef) -> Resolution:
        """
        Resolve a dependency reference.

        Args:
            reference: Declared dependency to resolve.

        Returns:
            Resolution; ``found`` is False for skipped and missing modules.
        """
        key = reference.full_name

        with self._lock:
            self.stats.lookups += 1

            cached = self._cache.get(key)
            if cached is not None:
                self.stats.cache_hits += 1
                return cached

            resolution = self._resolve_uncached(reference)
            self._cache[key] = resolution

        if resolution.origin is ResolutionOrigin.NOT_FOUND:
            logger.warning(f"DependencyUnresolved: {key}")
        else:
            logger.debug(f"Resolved {key} ({resolution.origin.value})")

        return resolution

    def _resolve_uncached(self, reference: DependencyRef) -> Resolution:
        # A second base library of another major version would only bring
        # duplicate namespaces into the decompiled output.
        if (
            reference.name == self.base_library_name
            and reference.version.major != self.base_library_major_version
        ):
            self.stats.skipped += 1
            return Resolution(reference=reference, origin=ResolutionOrigin.SKIPPED)

        payload = self._find_embedded_payload(reference)
        if payload is not None:
            try:
                module = self.parser.parse_bytes(payload.data, payload.name)
            except ModuleReadError as e:
                logger.warning(f"Embedded payload {payload.name} is not a module: {e}")
            else:
                module.bind_resolver(self)
                return Resolution(
                    reference=reference,
                    origin=ResolutionOrigin.EMBEDDED,
                    module=module,
                    payload_name=payload.name,
                )

        self.stats.search_path_lookups += 1
        module = self.search_path.find(reference)
        if module is None:
            return Resolution(reference=reference, origin=ResolutionOrigin.NOT_FOUND)

        module.bind_resolver(self)
        return Resolution(
            reference=reference,
            origin=ResolutionOrigin.SEARCH_PATH,
            module=module,
        )

    def _find_embedded_payload(self, reference: DependencyRef) -> EmbeddedPayload | None:
        if self.base_module is None:
            return None

        self.stats.embedded_searches += 1
        suffix = f"{reference.name}.dll"
        matches = [p for p in self.base_module.payloads if p.name.endswith(suffix)]

        if len(matches) > 1:
            names = ", ".join(p.name for p in matches)
            logger.warning(f"Several payloads match {suffix}: {names}; using {matches[0].name}")

        return matches[0] if matches else None
