"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from modsetup.modules.models import AssemblyVersion


class Settings(BaseSettings):
    """Setup settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MODSETUP_",
        case_sensitive=False,
        extra="ignore",
    )

    # Input modules
    client_path: Path = Field(
        default=Path("Terraria.exe"),
        description="Client module",
    )
    server_path: Path = Field(
        default=Path("TerrariaServer.exe"),
        description="Server module",
    )
    client_version: Annotated[AssemblyVersion, NoDecode] = Field(
        default=AssemblyVersion.parse("1.3.5.3"),
        description="Version the client module must declare",
    )
    server_version: Annotated[AssemblyVersion, NoDecode] = Field(
        default=AssemblyVersion.parse("1.3.5.3"),
        description="Version the server module must declare",
    )
    search_dir: Path = Field(
        default=Path("."),
        description="Search directory for system-level dependencies and debug working directory",
    )
    extra_search_dirs: list[Path] = Field(
        default_factory=list,
        description="Additional dependency search directories",
    )

    # Output
    base_dir: Path = Field(
        default=Path("."),
        description="Directory relative output paths resolve against",
    )
    src_dir: Path = Field(
        default=Path("src/decompiled"),
        description="Source tree directory, relative to base_dir",
    )

    # Run behaviour
    server_only: bool = Field(
        default=False,
        description="Skip the client module",
    )
    precedence: Literal["client", "server"] = Field(
        default="client",
        description="Module variant that claims shared output paths first",
    )
    single_decompile_thread: bool = Field(
        default=False,
        description="Run work items strictly one at a time",
    )
    max_parallelism: int = Field(
        default=0,
        ge=0,
        description="Maximum concurrent work items (0 for all cores)",
    )

    # Layout and resolution
    library_prefix: str = Field(
        default="Terraria.Libraries.",
        description="Resource name prefix rewritten into a library directory",
    )
    base_library_name: str = Field(
        default="mscorlib",
        description="Shared base runtime library",
    )
    base_library_major_version: int = Field(
        default=4,
        ge=1,
        description="Base runtime library major version that is resolved",
    )

    # Decompiler
    ilspycmd_path: str = Field(
        default="ilspycmd",
        description="Decompiler executable",
    )
    language_version: str = Field(
        default="Latest",
        description="Source language version passed to the decompiler",
    )
    brace_style: Literal["allman", "kr"] = Field(
        default="allman",
        description="Brace placement passed to the decompiler",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug console logging",
    )
    log_dir: Path = Field(
        default=Path("logs"),
        description="Log file directory",
    )

    @property
    def degree_of_parallelism(self) -> int:
        """Parallelism handed to the work scheduler."""
        if self.single_decompile_thread:
            return 1
        return self.max_parallelism

    @property
    def output_dir(self) -> Path:
        """Absolute-or-relative source tree directory."""
        return self.resolve_path(self.src_dir)

    @property
    def search_dirs(self) -> list[Path]:
        return [self.resolve_path(d) for d in (self.search_dir, *self.extra_search_dirs)]

    def resolve_path(self, path: Path) -> Path:
        """Resolve ``path`` against ``base_dir`` unless it is absolute."""
        path = Path(path)
        if path.is_absolute():
            return path
        return self.base_dir / path


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.degree_of_parallelism
        0
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
