"""Pytest configuration and shared fixtures."""

import os
from collections import Counter
from collections.abc import Generator, Sequence
from pathlib import Path

import pytest
from loguru import logger

from modsetup.core.config import Settings, clear_settings_cache
from modsetup.core.errors import DecompilerError, ModuleReadError
from modsetup.execution.scheduler import CancellationToken
from modsetup.modules.models import (
    AssemblyVersion,
    DependencyRef,
    EmbeddedPayload,
    Module,
    ModuleKind,
    TypeDefinition,
)
from modsetup.modules.reader import ModuleReader
from modsetup.modules.typesystem import TypeSystem
from modsetup.planning.layout import include_type_in_project

# Set test environment
os.environ.setdefault("MODSETUP_LOG_LEVEL", "DEBUG")

GAME_VERSION = AssemblyVersion.parse("1.3.5.3")

RELOGIC_PAYLOAD = "Terraria.Libraries.ReLogic.ReLogic.dll"
RELOGIC_IMAGE = b"image:ReLogic"
CONTENT_PAYLOAD = "Terraria.Localization.Content.en-US.json"


# =============================================================================
# FAKES
# =============================================================================


class FakeModuleParser:
    """In-memory ``ModuleParser`` keyed by file name and payload bytes."""

    def __init__(
        self,
        files: dict[str, Module] | None = None,
        images: dict[bytes, Module] | None = None,
    ):
        self.files = dict(files or {})
        self.images = dict(images or {})
        self.calls: Counter[str] = Counter()

    def parse_file(self, path: Path) -> Module:
        self.calls["parse_file"] += 1
        template = self.files.get(Path(path).name)
        if template is None:
            raise ModuleReadError(f"Not a module: {path}")
        return template.model_copy(update={"source_path": str(path)})

    def parse_bytes(self, data: bytes, name: str) -> Module:
        self.calls["parse_bytes"] += 1
        template = self.images.get(data)
        if template is None:
            raise ModuleReadError(f"Not a module: {name}")
        return template.model_copy()


class FakeDecompiler:
    """``Decompiler`` double that renders type names instead of source."""

    def __init__(
        self,
        fail_on: str | None = None,
        cancel_on: str | None = None,
    ):
        self.fail_on = fail_on
        self.cancel_on = cancel_on
        self.decompiled: list[str] = []
        self.closed = False

    def include_type(self, type_def: TypeDefinition) -> bool:
        return include_type_in_project(type_def)

    async def decompile_types(
        self,
        type_system: TypeSystem,
        types: Sequence[TypeDefinition],
        token: CancellationToken,
    ) -> str:
        names = [t.full_name for t in types]
        if self.cancel_on in names:
            token.cancel()
        token.raise_if_cancelled()
        if self.fail_on in names:
            raise DecompilerError(f"cannot decompile {self.fail_on}")

        self.decompiled.extend(names)
        body = "\n\n".join(f"class {name} {{ }}" for name in names)
        return f"// module: {type_system.module.name}\n{body}\n"

    async def decompile_module_metadata(
        self,
        type_system: TypeSystem,
        token: CancellationToken,
    ) -> str:
        token.raise_if_cancelled()
        return f'[assembly: AssemblyTitle("{type_system.module.name}")]\n'

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# MODULE FIXTURES
# =============================================================================


def make_type(full_name: str, **kwargs) -> TypeDefinition:
    namespace, _, name = full_name.rpartition(".")
    return TypeDefinition(name=name, namespace=namespace, **kwargs)


def make_ref(name: str, version: str = "1.0.0.0", token: str | None = None) -> DependencyRef:
    return DependencyRef(name=name, version=AssemblyVersion.parse(version), public_key_token=token)


@pytest.fixture
def relogic_module() -> Module:
    """Module image embedded in both game modules."""
    return Module(
        name="ReLogic",
        file_name="ReLogic.dll",
        version=AssemblyVersion.parse("1.0.0.0"),
        types=(make_type("ReLogic.Graphics.DynamicSpriteFont"),),
        dependencies=(
            make_ref("mscorlib", "2.0.0.0", "b77a5c561934e089"),
            make_ref("FNA", "17.0.0.0"),
        ),
    )


@pytest.fixture
def fna_module() -> Module:
    """Module found on the search path."""
    return Module(
        name="FNA",
        file_name="FNA.dll",
        version=AssemblyVersion.parse("17.0.0.0"),
        types=(make_type("Microsoft.Xna.Framework.Game"),),
        dependencies=(make_ref("mscorlib", "4.0.0.0", "b77a5c561934e089"),),
    )


@pytest.fixture
def client_module() -> Module:
    return Module(
        name="Terraria",
        file_name="Terraria.exe",
        version=GAME_VERSION,
        kind=ModuleKind.WINEXE,
        architecture="x86",
        types=(
            TypeDefinition(name="<Module>"),
            make_type("Terraria.Main"),
            make_type("Terraria.Player"),
            make_type("Terraria.player"),
            make_type("Terraria.Player+Hooks", is_nested=True, declaring_type="Terraria.Player"),
            make_type("Terraria.<>c__DisplayClass1"),
            make_type("N.Foo"),
        ),
        payloads=(
            EmbeddedPayload(name=RELOGIC_PAYLOAD, data=RELOGIC_IMAGE),
            EmbeddedPayload(name=CONTENT_PAYLOAD, data=b'{"Title": "Terraria"}'),
        ),
        dependencies=(
            make_ref("mscorlib", "4.0.0.0", "b77a5c561934e089"),
            make_ref("ReLogic"),
            make_ref("System.Missing"),
            make_ref("FNA", "17.0.0.0"),
        ),
    )


@pytest.fixture
def server_module() -> Module:
    return Module(
        name="TerrariaServer",
        file_name="TerrariaServer.exe",
        version=GAME_VERSION,
        kind=ModuleKind.EXE,
        architecture="x86",
        types=(
            TypeDefinition(name="<Module>"),
            make_type("Terraria.Main"),
            make_type("Terraria.Netplay"),
            make_type("N.Foo"),
        ),
        payloads=(EmbeddedPayload(name=RELOGIC_PAYLOAD, data=RELOGIC_IMAGE),),
        dependencies=(
            make_ref("mscorlib", "4.0.0.0", "b77a5c561934e089"),
            make_ref("ReLogic"),
            make_ref("FNA", "17.0.0.0"),
        ),
    )


@pytest.fixture
def parser(
    client_module: Module,
    server_module: Module,
    fna_module: Module,
    relogic_module: Module,
) -> FakeModuleParser:
    return FakeModuleParser(
        files={
            "Terraria.exe": client_module,
            "TerrariaServer.exe": server_module,
            "FNA.dll": fna_module,
        },
        images={RELOGIC_IMAGE: relogic_module},
    )


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    """Game install directory holding both modules and FNA."""
    directory = tmp_path / "game"
    directory.mkdir()
    for name in ("Terraria.exe", "TerrariaServer.exe", "FNA.dll"):
        (directory / name).write_bytes(name.encode())
    return directory


@pytest.fixture
def reader(game_dir: Path, parser: FakeModuleParser) -> ModuleReader:
    return ModuleReader(search_dirs=[game_dir], parser=parser)


@pytest.fixture
def settings(tmp_path: Path, game_dir: Path) -> Settings:
    """Settings pointing at the fake game directory."""
    return Settings(
        base_dir=tmp_path,
        client_path=game_dir / "Terraria.exe",
        server_path=game_dir / "TerrariaServer.exe",
        search_dir=game_dir,
        src_dir=Path("src/decompiled"),
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def decompiler() -> FakeDecompiler:
    return FakeDecompiler()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator:
    """Keep log files and cached settings inside the test."""
    monkeypatch.setenv("MODSETUP_LOG_DIR", str(tmp_path / "logs"))
    clear_settings_cache()

    yield

    clear_settings_cache()
    logger.remove()


def snapshot(directory: Path) -> dict[str, bytes]:
    """Relative path to content of every file under ``directory``."""
    return {
        path.relative_to(directory).as_posix(): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
