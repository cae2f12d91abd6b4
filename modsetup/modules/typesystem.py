"""Type system - a module together with its resolved dependency closure."""

from collections import deque

from loguru import logger

from modsetup.modules.models import Module, Resolution, ResolutionOrigin
from modsetup.modules.resolver import EmbeddedDependencyResolver


class TypeSystem:
    """
    A module plus the resolved transitive closure of its dependencies.

    Resolution walks declared dependencies breadth-first in declaration
    order, so ``references`` is deterministic for identical inputs. Each
    full name is visited once, which also guards against reference cycles.

    Example:
        >>> ts = TypeSystem(module)
        >>> ts.resolve_references()
        >>> [r.reference.name for r in ts.unresolved]
        []
    """

    def __init__(
        self,
        module: Module,
        resolver: EmbeddedDependencyResolver | None = None,
    ) -> None:
        self.module = module
        self.resolver = resolver or module.resolver
        if self.resolver is None:
            raise ValueError(f"Module {module.name} has no dependency resolver bound")
        self._references: dict[str, Resolution] | None = None

    def resolve_references(self) -> dict[str, Resolution]:
        """Resolve (once) and return the dependency closure keyed by full name."""
        if self._references is not None:
            return self._references

        logger.info(f"Resolving dependencies of {self.module.name}")

        references: dict[str, Resolution] = {}
        queue = deque(self.module.dependencies)

        while queue:
            reference = queue.popleft()
            if reference.full_name in references:
                continue

            resolution = self.resolver.resolve(reference)
            references[reference.full_name] = resolution

            if resolution.module is not None:
                queue.extend(resolution.module.dependencies)

        self._references = references

        counts = {origin: 0 for origin in ResolutionOrigin}
        for resolution in references.values():
            counts[resolution.origin] += 1
        summary = ", ".join(f"{count} {origin.value}" for origin, count in counts.items())
        logger.info(f"{self.module.name}: {len(references)} references ({summary})")

        return references

    @property
    def references(self) -> dict[str, Resolution]:
        return self.resolve_references()

    def resolution_for(self, name: str) -> Resolution | None:
        """Find the resolution of a direct dependency by simple name."""
        reference = self.module.dependency(name)
        if reference is None:
            return None
        return self.references.get(reference.full_name)

    def by_origin(self, origin: ResolutionOrigin) -> list[Resolution]:
        return [r for r in self.references.values() if r.origin is origin]

    @property
    def unresolved(self) -> list[Resolution]:
        return self.by_origin(ResolutionOrigin.NOT_FOUND)

    @property
    def skipped(self) -> list[Resolution]:
        return self.by_origin(ResolutionOrigin.SKIPPED)
