"""Module reader - loads a compiled module and binds its dependency resolver."""

from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from modsetup.core.errors import ModuleReadError, VersionMismatchError
from modsetup.modules.models import AssemblyVersion, Module
from modsetup.modules.parser import DnfileModuleParser, ModuleParser
from modsetup.modules.resolver import EmbeddedDependencyResolver, SearchPathResolver


class ModuleReader:
    """
    Read modules from disk and verify their declared versions.

    Every ``read`` constructs a fresh ``EmbeddedDependencyResolver`` and
    binds it to the module it returns, so the resolution cache is scoped to
    that module's own transitive dependencies.

    Attributes:
        search_dirs: Directories searched for system-level dependencies.
        parser: Parser used for the module and any embedded dependencies.

    Example:
        >>> reader = ModuleReader(search_dirs=[Path("C:/Games/Terraria")])
        >>> module = reader.read(Path("Terraria.exe"), AssemblyVersion.parse("1.3.5.3"))
        >>> module.resolver is not None
        True
    """

    def __init__(
        self,
        search_dirs: Iterable[Path] = (),
        parser: ModuleParser | None = None,
        base_library_name: str = "mscorlib",
        base_library_major_version: int = 4,
    ) -> None:
        self.search_dirs = [Path(d) for d in search_dirs]
        self.parser = parser or DnfileModuleParser()
        self.base_library_name = base_library_name
        self.base_library_major_version = base_library_major_version

    def create_resolver(self) -> EmbeddedDependencyResolver:
        """Create an unbound resolver using this reader's configuration."""
        return EmbeddedDependencyResolver(
            search_path=SearchPathResolver(self.search_dirs, self.parser),
            parser=self.parser,
            base_library_name=self.base_library_name,
            base_library_major_version=self.base_library_major_version,
        )

    def read(self, path: Path, expected_version: AssemblyVersion) -> Module:
        """
        Read a module and check its version.

        Args:
            path: Module file to read.
            expected_version: Version the module must declare.

        Returns:
            The module, with its dependency resolver bound.

        Raises:
            ModuleReadError: If the file is missing or cannot be parsed.
            VersionMismatchError: If the declared version differs.
        """
        path = Path(path)
        logger.info(f"Loading {path.name}")

        if not path.is_file():
            raise ModuleReadError(f"Module file not found: {path}")

        resolver = self.create_resolver()
        module = self.parser.parse_file(path)
        resolver.bind(module)

        if module.version != expected_version:
            raise VersionMismatchError(module.name, module.version, expected_version)

        logger.debug(
            f"Loaded {module.name} {module.version}: {len(module.types)} types, "
            f"{len(module.payloads)} payloads, {len(module.dependencies)} dependencies"
        )
        return module
