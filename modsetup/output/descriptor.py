"""Build descriptor writers - MSBuild project and project-user files.

The project file enumerates every planned file of a module with its role
tag plus a name-sorted reference list, so identical inputs always produce
byte-identical descriptors.
"""

import xml.etree.ElementTree as ET
from pathlib import Path
from uuid import UUID

from loguru import logger

from modsetup.modules.models import Module, ModuleKind, ResolutionOrigin
from modsetup.modules.typesystem import TypeSystem
from modsetup.output.files import write_text_atomic
from modsetup.planning.layout import FilePlan
from modsetup.planning.naming import path_key, to_windows_path

MSBUILD_NS = "http://schemas.microsoft.com/developer/msbuild/2003"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'

CLIENT_GUID = UUID("3996D5FA-6E59-4FE4-9F2B-40EEEF9645D5")
SERVER_GUID = UUID("85BF1171-A0DC-4696-BFA4-D6E9DC4E0830")

OUTPUT_TYPES = {
    ModuleKind.EXE: "Exe",
    ModuleKind.WINEXE: "WinExe",
    ModuleKind.DLL: "Library",
}

ET.register_namespace("", MSBUILD_NS)


def _q(tag: str) -> str:
    return f"{{{MSBUILD_NS}}}{tag}"


def _element(parent: ET.Element, tag: str, text: str | None = None, **attrs: str) -> ET.Element:
    element = ET.SubElement(parent, _q(tag), attrs)
    if text is not None:
        element.text = text
    return element


def _serialize(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"


def target_framework_version(module: Module) -> str:
    """Target framework implied by the module's runtime version."""
    if module.runtime_version.startswith("v2"):
        return "v3.5" if module.dependency("System.Core") is not None else "v2.0"
    return "v4.0"


# =============================================================================
# PROJECT FILE
# =============================================================================


class ProjectFileWriter:
    """
    Write the ``<Module>.csproj`` build descriptor of one module.

    The module's dependency list is copied and sorted by name before
    rendering; the module itself is never mutated.

    Example:
        >>> writer = ProjectFileWriter()
        >>> xml = writer.render(module, plan, type_system, CLIENT_GUID)
        >>> "Terraria\\Main.cs" in xml
        True
    """

    def __init__(self, base_library_name: str = "mscorlib") -> None:
        self.base_library_name = base_library_name

    def render(
        self,
        module: Module,
        plan: FilePlan,
        type_system: TypeSystem | None,
        guid: UUID,
    ) -> str:
        """Render the project file as text."""
        root = ET.Element(_q("Project"), {"ToolsVersion": "4.0", "DefaultTargets": "Build"})
        platform = module.architecture

        props = _element(root, "PropertyGroup")
        _element(props, "ProjectGuid", "{" + str(guid).upper() + "}")
        _element(props, "Configuration", "Debug", Condition=" '$(Configuration)' == '' ")
        _element(props, "Platform", platform, Condition=" '$(Platform)' == '' ")
        _element(props, "OutputType", OUTPUT_TYPES[module.kind])
        _element(props, "AssemblyName", module.name)
        _element(props, "TargetFrameworkVersion", target_framework_version(module))
        _element(props, "WarningLevel", "4")
        _element(props, "AllowUnsafeBlocks", "True")

        platform_props = _element(root, "PropertyGroup", Condition=f" '$(Platform)' == '{platform}' ")
        _element(platform_props, "PlatformTarget", platform)

        debug = _element(root, "PropertyGroup", Condition=" '$(Configuration)' == 'Debug' ")
        _element(debug, "OutputPath", "bin\\Debug\\")
        _element(debug, "DebugSymbols", "true")
        _element(debug, "DebugType", "full")
        _element(debug, "Optimize", "false")

        release = _element(root, "PropertyGroup", Condition=" '$(Configuration)' == 'Release' ")
        _element(release, "OutputPath", "bin\\Release\\")
        _element(release, "DebugSymbols", "false")
        _element(release, "DebugType", "none")
        _element(release, "Optimize", "true")

        self._add_references(root, module, plan, type_system)
        self._add_files(root, plan)

        _element(root, "Import", Project="$(MSBuildToolsPath)\\Microsoft.CSharp.targets")
        return _serialize(root)

    def write(
        self,
        module: Module,
        plan: FilePlan,
        type_system: TypeSystem | None,
        guid: UUID,
        path: Path,
    ) -> None:
        """Render and atomically write the project file."""
        write_text_atomic(path, self.render(module, plan, type_system, guid))
        logger.debug(f"Wrote {path} for {module.name}")

    def _add_references(
        self,
        root: ET.Element,
        module: Module,
        plan: FilePlan,
        type_system: TypeSystem | None,
    ) -> None:
        references = sorted(module.dependencies, key=lambda r: r.name)
        group = _element(root, "ItemGroup")

        for reference in references:
            if reference.name == self.base_library_name:
                continue
            element = _element(group, "Reference", Include=reference.name)

            resolution = type_system.resolution_for(reference.name) if type_system else None
            if (
                resolution is not None
                and resolution.origin is ResolutionOrigin.EMBEDDED
                and resolution.payload_name is not None
            ):
                hint = plan.path_of_payload(resolution.payload_name)
                if hint is not None:
                    _element(element, "HintPath", to_windows_path(hint))

    @staticmethod
    def _add_files(root: ET.Element, plan: FilePlan) -> None:
        by_item_type: dict[str, list[str]] = {}
        for entry in plan:
            by_item_type.setdefault(entry.item_type, []).append(entry.path)

        for item_type in sorted(by_item_type):
            group = _element(root, "ItemGroup")
            for path in sorted(by_item_type[item_type], key=lambda p: (path_key(p), p)):
                _element(group, item_type, Include=to_windows_path(path))


# =============================================================================
# PROJECT USER FILE
# =============================================================================


class ProjectUserFileWriter:
    """Write the ``<Module>.csproj.user`` local-environment descriptor."""

    def render(self, debug_working_dir: str) -> str:
        root = ET.Element(_q("Project"), {"ToolsVersion": "4.0"})
        props = _element(root, "PropertyGroup", Condition="'$(Configuration)' == 'Debug'")
        _element(props, "StartWorkingDirectory", debug_working_dir)
        return _serialize(root)

    def write(self, module: Module, debug_working_dir: str, path: Path) -> None:
        write_text_atomic(path, self.render(debug_working_dir))
        logger.debug(f"Wrote {path} for {module.name}")


def project_file_name(module: Module) -> str:
    return f"{module.stem}.csproj"


def project_user_file_name(module: Module) -> str:
    return f"{module.stem}.csproj.user"
