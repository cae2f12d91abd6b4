"""Module parsers - turn compiled binaries into ``Module`` models.

The orchestrator only depends on the ``ModuleParser`` protocol. The
bundled implementation reads .NET assemblies through dnfile.
"""

from pathlib import Path
from typing import Any, Protocol

import dnfile
import pefile
from loguru import logger

from modsetup.core.errors import ModuleReadError
from modsetup.modules.models import (
    AssemblyVersion,
    DependencyRef,
    EmbeddedPayload,
    Module,
    ModuleKind,
    TypeDefinition,
)

IMAGE_SUBSYSTEM_WINDOWS_GUI = 2
IMAGE_FILE_MACHINE_AMD64 = 0x8664
COMIMAGE_FLAGS_32BITREQUIRED = 0x00000002


class ModuleParser(Protocol):
    """Parses compiled modules from disk or from memory."""

    def parse_file(self, path: Path) -> Module:
        """Parse the module stored at ``path``.

        Raises:
            ModuleReadError: If the file cannot be opened or parsed.
        """
        ...

    def parse_bytes(self, data: bytes, name: str) -> Module:
        """Parse a module image held in memory (e.g. an embedded payload).

        Raises:
            ModuleReadError: If the data is not a module image.
        """
        ...


def _text(item: Any) -> str:
    """Heap values are wrapped objects in recent dnfile releases."""
    if item is None:
        return ""
    value = getattr(item, "value", item)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _blob(item: Any) -> bytes:
    if item is None:
        return b""
    value = getattr(item, "value", item)
    return bytes(value) if value else b""


def _rows(table: Any) -> list[Any]:
    if table is None:
        return []
    return list(table.rows)


class DnfileModuleParser:
    """
    Read .NET assemblies with dnfile.

    Reads the Assembly, AssemblyRef, TypeDef, NestedClass and
    ManifestResource metadata tables; only resources stored inside the
    image become payloads.

    Example:
        >>> parser = DnfileModuleParser()
        >>> module = parser.parse_file(Path("Terraria.exe"))
        >>> str(module.version)
        '1.3.5.3'
    """

    def parse_file(self, path: Path) -> Module:
        path = Path(path)
        logger.debug(f"Parsing module image {path}")
        try:
            pe = dnfile.dnPE(str(path))
        except (OSError, pefile.PEFormatError) as e:
            raise ModuleReadError(f"Cannot read {path}: {e}") from e
        try:
            return self._build(pe, path.name, str(path), label=path.name)
        finally:
            pe.close()

    def parse_bytes(self, data: bytes, name: str) -> Module:
        try:
            pe = dnfile.dnPE(data=data)
        except pefile.PEFormatError as e:
            raise ModuleReadError(f"Cannot read embedded module {name}: {e}") from e
        try:
            return self._build(pe, None, None, label=name)
        finally:
            pe.close()

    # =========================================================================
    # METADATA EXTRACTION
    # =========================================================================

    def _build(
        self,
        pe: Any,
        file_name: str | None,
        source_path: str | None,
        label: str,
    ) -> Module:
        net = getattr(pe, "net", None)
        if net is None or net.mdtables is None:
            raise ModuleReadError(f"{label} is not a .NET module")

        assembly_rows = _rows(net.mdtables.Assembly)
        if not assembly_rows:
            raise ModuleReadError(f"{label} has no assembly manifest")
        assembly = assembly_rows[0]
        kind = self._kind(pe)
        name = _text(assembly.Name)

        if file_name is None:
            extension = ".dll" if kind is ModuleKind.DLL else ".exe"
            file_name = f"{name}{extension}"

        return Module(
            name=name,
            file_name=file_name,
            version=self._version(assembly),
            kind=kind,
            runtime_version=self._runtime_version(net),
            architecture=self._architecture(pe, net),
            types=tuple(self._types(net)),
            payloads=tuple(self._payloads(net)),
            dependencies=tuple(self._dependencies(net)),
            source_path=source_path,
        )

    @staticmethod
    def _version(row: Any) -> AssemblyVersion:
        return AssemblyVersion(
            major=row.MajorVersion,
            minor=row.MinorVersion,
            build=row.BuildNumber,
            revision=row.RevisionNumber,
        )

    @staticmethod
    def _kind(pe: Any) -> ModuleKind:
        if pe.is_dll():
            return ModuleKind.DLL
        if pe.OPTIONAL_HEADER.Subsystem == IMAGE_SUBSYSTEM_WINDOWS_GUI:
            return ModuleKind.WINEXE
        return ModuleKind.EXE

    @staticmethod
    def _runtime_version(net: Any) -> str:
        header = getattr(net.metadata, "struct", None)
        version = _text(getattr(header, "Version", None)).rstrip("\x00").strip()
        return version or "v4.0.30319"

    @staticmethod
    def _architecture(pe: Any, net: Any) -> str:
        if pe.FILE_HEADER.Machine == IMAGE_FILE_MACHINE_AMD64:
            return "x64"
        flags = int(getattr(net.struct, "Flags", 0) or 0)
        if flags & COMIMAGE_FLAGS_32BITREQUIRED:
            return "x86"
        return "AnyCPU"

    def _types(self, net: Any) -> list[TypeDefinition]:
        type_rows = _rows(net.mdtables.TypeDef)

        # row index (1-based) -> enclosing row index
        enclosing: dict[int, int] = {}
        for row in _rows(net.mdtables.NestedClass):
            enclosing[row.NestedClass.row_index] = row.EnclosingClass.row_index

        def full_name(index: int) -> str:
            row = type_rows[index - 1]
            name, namespace = _text(row.TypeName), _text(row.TypeNamespace)
            if index in enclosing:
                return f"{full_name(enclosing[index])}+{name}"
            return f"{namespace}.{name}" if namespace else name

        types = []
        for index, row in enumerate(type_rows, start=1):
            nested = index in enclosing
            types.append(
                TypeDefinition(
                    name=_text(row.TypeName),
                    namespace=_text(row.TypeNamespace),
                    token=0x02000000 | index,
                    is_nested=nested,
                    declaring_type=full_name(enclosing[index]) if nested else None,
                )
            )
        return types

    @staticmethod
    def _payloads(net: Any) -> list[EmbeddedPayload]:
        payloads = []
        for resource in net.resources or []:
            data = getattr(resource, "data", None)
            if data is None:
                continue
            payloads.append(EmbeddedPayload(name=_text(resource.name), data=bytes(data)))
        return payloads

    @staticmethod
    def _dependencies(net: Any) -> list[DependencyRef]:
        refs = []
        for row in _rows(net.mdtables.AssemblyRef):
            key = _blob(row.PublicKeyOrToken)
            if not key:
                token = None
            elif len(key) == 8:
                token = key.hex()
            else:
                token = DependencyRef.token_from_public_key(key)
            refs.append(
                DependencyRef(
                    name=_text(row.Name),
                    version=DnfileModuleParser._version(row),
                    culture=_text(row.Culture) or "neutral",
                    public_key_token=token,
                )
            )
        return refs
