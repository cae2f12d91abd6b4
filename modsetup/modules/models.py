"""Pydantic models for compiled modules.

This module defines the in-memory representation of a compiled binary:
its declared identity, contained type definitions, embedded payloads and
declared external dependencies, plus the outcome of resolving one of those
dependencies.
"""

import hashlib
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

if TYPE_CHECKING:
    from modsetup.modules.resolver import EmbeddedDependencyResolver


# =============================================================================
# ENUMS
# =============================================================================


class ModuleKind(str, Enum):
    """Kind of image a module was compiled into."""

    EXE = "exe"
    WINEXE = "winexe"
    DLL = "dll"


class ResolutionOrigin(str, Enum):
    """Where a dependency lookup found (or failed to find) its module."""

    EMBEDDED = "embedded"
    SEARCH_PATH = "search_path"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"


# =============================================================================
# VERSIONS
# =============================================================================


class AssemblyVersion(BaseModel):
    """Four-part assembly version (major.minor.build.revision).

    Example:
        >>> AssemblyVersion.parse("1.3.5.3").major
        1
        >>> str(AssemblyVersion.parse("4.0"))
        '4.0.0.0'
    """

    model_config = ConfigDict(frozen=True)

    major: int = Field(default=0, ge=0)
    minor: int = Field(default=0, ge=0)
    build: int = Field(default=0, ge=0)
    revision: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _coerce_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._parts(data)
        return data

    @classmethod
    def parse(cls, text: str) -> "AssemblyVersion":
        """Parse a dotted version string; missing components are 0."""
        return cls(**cls._parts(text))

    @staticmethod
    def _parts(text: str) -> dict[str, int]:
        pieces = text.strip().split(".")
        if not 1 <= len(pieces) <= 4 or not all(p.isdigit() for p in pieces):
            raise ValueError(f"Invalid version string: {text!r}")
        values = [int(p) for p in pieces] + [0] * (4 - len(pieces))
        return dict(zip(("major", "minor", "build", "revision"), values, strict=True))

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.major, self.minor, self.build, self.revision)

    def __str__(self) -> str:
        return ".".join(str(v) for v in self.as_tuple())

    def __lt__(self, other: "AssemblyVersion") -> bool:
        return self.as_tuple() < other.as_tuple()


# =============================================================================
# MODULE CONTENTS
# =============================================================================


class DependencyRef(BaseModel):
    """A declared reference to an external module."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: AssemblyVersion = Field(default_factory=AssemblyVersion)
    culture: str = Field(default="neutral")
    public_key_token: str | None = Field(
        default=None,
        description="Lower-case hex public key token, None when unsigned",
    )

    @property
    def full_name(self) -> str:
        """Display name, including version, used as the resolution cache key."""
        token = self.public_key_token or "null"
        culture = self.culture or "neutral"
        return f"{self.name}, Version={self.version}, Culture={culture}, PublicKeyToken={token}"

    @staticmethod
    def token_from_public_key(key: bytes) -> str:
        """Compute the 8-byte public key token of a full public key."""
        return hashlib.sha1(key).digest()[-8:][::-1].hex()


class TypeDefinition(BaseModel):
    """A type contained in a module."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str = ""
    token: int = Field(default=0, description="Metadata token, for diagnostics")
    is_nested: bool = False
    declaring_type: str | None = None

    @property
    def full_name(self) -> str:
        if self.is_nested and self.declaring_type:
            return f"{self.declaring_type}+{self.name}"
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    @property
    def is_compiler_generated(self) -> bool:
        return self.name.startswith("<") or "<>" in self.name


class EmbeddedPayload(BaseModel):
    """A resource blob embedded inside a module."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes = Field(default=b"", repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


class Module(BaseModel):
    """Immutable in-memory representation of one compiled binary.

    The dependency resolver bound by the reader is kept as a private
    attribute and set at most once.

    Example:
        >>> module = Module(
        ...     name="Terraria",
        ...     file_name="Terraria.exe",
        ...     version=AssemblyVersion.parse("1.3.5.3"),
        ... )
        >>> module.stem
        'Terraria'
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    version: AssemblyVersion
    kind: ModuleKind = ModuleKind.DLL
    runtime_version: str = "v4.0.30319"
    architecture: str = "AnyCPU"
    types: tuple[TypeDefinition, ...] = ()
    payloads: tuple[EmbeddedPayload, ...] = ()
    dependencies: tuple[DependencyRef, ...] = ()
    source_path: str | None = None

    _resolver: Any = PrivateAttr(default=None)

    @property
    def stem(self) -> str:
        """File name without extension, used to name descriptors."""
        head, dot, _ = self.file_name.rpartition(".")
        return head if dot else self.file_name

    @property
    def resolver(self) -> "EmbeddedDependencyResolver | None":
        return self._resolver

    def bind_resolver(self, resolver: "EmbeddedDependencyResolver") -> None:
        """Attach the resolver that serves this module's dependencies.

        Raises:
            ValueError: If a different resolver is already bound.
        """
        if self._resolver is not None and self._resolver is not resolver:
            raise ValueError(f"Module {self.name} already has a resolver bound")
        self._resolver = resolver

    def dependency(self, name: str) -> DependencyRef | None:
        for ref in self.dependencies:
            if ref.name == name:
                return ref
        return None


class Resolution(BaseModel):
    """Outcome of resolving one dependency reference."""

    model_config = ConfigDict(frozen=True)

    reference: DependencyRef
    origin: ResolutionOrigin
    module: Module | None = None
    payload_name: str | None = Field(
        default=None,
        description="Name of the embedded payload the module was read from",
    )

    @property
    def found(self) -> bool:
        return self.module is not None
