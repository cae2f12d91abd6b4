"""
Decompiler adapters.

The orchestrator treats turning bytecode into source text as an external,
opaque capability behind the ``Decompiler`` protocol. The bundled adapter
runs the ``ilspycmd`` command line tool in a subprocess per type.
"""

import asyncio
import shutil
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from pathlib import Path
from typing import Literal, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from modsetup.core.errors import DecompilerError
from modsetup.execution.scheduler import CancellationToken
from modsetup.modules.models import ResolutionOrigin, TypeDefinition
from modsetup.modules.typesystem import TypeSystem
from modsetup.planning.layout import METADATA_PATH, include_type_in_project

POLL_INTERVAL_SECONDS = 0.25
SETTINGS_FILE_NAME = "ILSpy.xml"

BRACE_PLACEMENT = {"allman": "NextLine", "kr": "EndOfLine"}
BRACE_STYLE_SETTINGS = (
    "NamespaceBraceStyle",
    "ClassBraceStyle",
    "InterfaceBraceStyle",
    "StructBraceStyle",
    "EnumBraceStyle",
    "MethodBraceStyle",
    "ConstructorBraceStyle",
    "DestructorBraceStyle",
    "AnonymousMethodBraceStyle",
    "PropertyBraceStyle",
    "EventBraceStyle",
)


class FormattingOptions(BaseModel):
    """Source formatting options, handed to the decompiler unchanged."""

    model_config = ConfigDict(frozen=True)

    brace_style: Literal["allman", "kr"] = "allman"
    indentation: str = Field(default="\t")
    language_version: str = Field(default="Latest")

    def to_settings_xml(self) -> str:
        """
        Render the options as an ILSpy settings file.

        Example:
            >>> "EndOfLine" in FormattingOptions(brace_style="kr").to_settings_xml()
            True
        """
        placement = BRACE_PLACEMENT[self.brace_style]
        attributes = {"IndentationString": self.indentation}
        attributes.update((name, placement) for name in BRACE_STYLE_SETTINGS)

        root = ET.Element("ILSpy")
        settings = ET.SubElement(root, "DecompilerSettings")
        ET.SubElement(settings, "CSharpFormattingOptions", attributes)
        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="unicode") + "\n"


class Decompiler(Protocol):
    """External decompile capability consumed by the orchestrator."""

    def include_type(self, type_def: TypeDefinition) -> bool:
        """Whether a type gets its own source file in the project."""
        ...

    async def decompile_types(
        self,
        type_system: TypeSystem,
        types: Sequence[TypeDefinition],
        token: CancellationToken,
    ) -> str:
        """Decompile a group of types sharing one source file."""
        ...

    async def decompile_module_metadata(
        self,
        type_system: TypeSystem,
        token: CancellationToken,
    ) -> str:
        """Decompile module and assembly level attributes."""
        ...

    async def close(self) -> None:
        """Release any scratch resources."""
        ...


# =============================================================================
# ILSPYCMD ADAPTER
# =============================================================================


class IlspyCmdDecompiler:
    """
    Decompile through the ``ilspycmd`` command line tool.

    References resolved from embedded payloads are written once per type
    system into a private scratch directory so ``ilspycmd`` can load them.
    The formatting options are written once into an ILSpy settings file
    that every invocation is pointed at. ``close`` removes the scratch
    directories.

    Example:
        >>> decompiler = IlspyCmdDecompiler(search_dirs=[Path("C:/Games/Terraria")])
        >>> text = await decompiler.decompile_types(ts, [main_type], token)
        >>> await decompiler.close()
    """

    def __init__(
        self,
        executable: str = "ilspycmd",
        search_dirs: Sequence[Path] = (),
        formatting: FormattingOptions | None = None,
    ):
        self.executable = shutil.which(executable) or executable
        self.search_dirs = [Path(d) for d in search_dirs]
        self.formatting = formatting or FormattingOptions()
        self._reference_dirs: dict[int, Path] = {}
        self._settings_file: Path | None = None
        self._scratch_dirs: list[Path] = []
        self._lock = asyncio.Lock()

    def include_type(self, type_def: TypeDefinition) -> bool:
        return include_type_in_project(type_def)

    async def decompile_types(
        self,
        type_system: TypeSystem,
        types: Sequence[TypeDefinition],
        token: CancellationToken,
    ) -> str:
        module_path = self._module_path(type_system)
        settings_args = await self._settings_args()
        reference_args = await self._reference_args(type_system)

        sources = []
        for type_def in types:
            token.raise_if_cancelled()
            args = [
                "-t",
                type_def.full_name,
                "-lv",
                self.formatting.language_version,
                *settings_args,
                *reference_args,
                module_path,
            ]
            sources.append((await self._run(args, token)).rstrip("\n"))

        return "\n\n".join(sources) + "\n"

    async def decompile_module_metadata(
        self,
        type_system: TypeSystem,
        token: CancellationToken,
    ) -> str:
        module_path = self._module_path(type_system)
        settings_args = await self._settings_args()
        reference_args = await self._reference_args(type_system)

        output_dir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="modsetup-project-"))
        try:
            args = ["-p", "-o", str(output_dir), *settings_args, *reference_args, module_path]
            await self._run(args, token)
            info = output_dir / METADATA_PATH
            if not await asyncio.to_thread(info.is_file):
                raise DecompilerError(f"{self.executable} produced no {METADATA_PATH}")
            return await asyncio.to_thread(info.read_text, encoding="utf-8-sig")
        finally:
            await asyncio.to_thread(shutil.rmtree, output_dir, ignore_errors=True)

    async def close(self) -> None:
        async with self._lock:
            for directory in self._scratch_dirs:
                await asyncio.to_thread(shutil.rmtree, directory, ignore_errors=True)
            self._scratch_dirs.clear()
            self._reference_dirs.clear()
            self._settings_file = None

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _module_path(type_system: TypeSystem) -> str:
        if type_system.module.source_path is None:
            raise DecompilerError(f"{type_system.module.name} was not read from disk")
        return type_system.module.source_path

    async def _settings_args(self) -> list[str]:
        async with self._lock:
            if self._settings_file is None:
                directory = Path(
                    await asyncio.to_thread(tempfile.mkdtemp, prefix="modsetup-settings-")
                )
                self._scratch_dirs.append(directory)
                path = directory / SETTINGS_FILE_NAME
                await asyncio.to_thread(
                    path.write_text, self.formatting.to_settings_xml(), encoding="utf-8"
                )
                logger.debug(f"Wrote decompiler settings to {path}")
                self._settings_file = path
            return ["--ilspy-settingsfile", str(self._settings_file)]

    async def _reference_args(self, type_system: TypeSystem) -> list[str]:
        directories = [*self.search_dirs]
        embedded = await self._materialize_embedded(type_system)
        if embedded is not None:
            directories.append(embedded)

        args: list[str] = []
        for directory in directories:
            args.extend(["-r", str(directory)])
        return args

    async def _materialize_embedded(self, type_system: TypeSystem) -> Path | None:
        async with self._lock:
            key = id(type_system)
            if key in self._reference_dirs:
                return self._reference_dirs[key]

            payloads = {p.name: p for p in type_system.module.payloads}
            resolutions = [
                r
                for r in type_system.references.values()
                if r.origin is ResolutionOrigin.EMBEDDED and r.payload_name in payloads
            ]
            if not resolutions:
                return None

            directory = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="modsetup-refs-"))
            self._scratch_dirs.append(directory)
            for resolution in resolutions:
                target = directory / f"{resolution.reference.name}.dll"
                await asyncio.to_thread(target.write_bytes, payloads[resolution.payload_name].data)

            logger.debug(f"Materialized {len(resolutions)} embedded references in {directory}")
            self._reference_dirs[key] = directory
            return directory

    async def _run(self, args: list[str], token: CancellationToken) -> str:
        logger.debug(f"Spawning: {self.executable} {' '.join(args[:3])}...")
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DecompilerError(f"Cannot start {self.executable}: {e}") from e

        communicate = asyncio.ensure_future(process.communicate())
        while True:
            done, _ = await asyncio.wait({communicate}, timeout=POLL_INTERVAL_SECONDS)
            if done:
                break
            if token.is_cancelled:
                process.kill()
                await communicate
                token.raise_if_cancelled()

        stdout, stderr = communicate.result()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise DecompilerError(
                f"{self.executable} exited with {process.returncode}: {message}"
            )
        return stdout.decode("utf-8", errors="replace")
