"""Decompile task orchestrator - coordinates the whole setup pipeline.

A run deletes the old source tree, reads every configured module variant,
plans and de-duplicates their output files, turns the surviving files and
the build descriptors into independent work items and hands those to the
work scheduler.
"""

import asyncio
import shutil
import time
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

from loguru import logger

from modsetup.core.config import Settings
from modsetup.core.errors import Stage
from modsetup.execution.scheduler import (
    CancellationToken,
    ExecutionReport,
    WorkItem,
    WorkScheduler,
)
from modsetup.modules.models import AssemblyVersion, Module, ResolutionOrigin
from modsetup.modules.reader import ModuleReader
from modsetup.modules.typesystem import TypeSystem
from modsetup.output.decompiler import Decompiler, FormattingOptions, IlspyCmdDecompiler
from modsetup.output.descriptor import (
    CLIENT_GUID,
    SERVER_GUID,
    ProjectFileWriter,
    ProjectUserFileWriter,
    project_file_name,
    project_user_file_name,
)
from modsetup.output.files import write_bytes_atomic, write_text_atomic
from modsetup.planning.layout import (
    ContentKind,
    FileLayoutPlanner,
    FilePlan,
    FilePlanEntry,
    GlobalFileSet,
)


class ModuleVariant(str, Enum):
    """Module variants a setup run can process."""

    CLIENT = "client"
    SERVER = "server"

    @property
    def guid(self) -> UUID:
        return CLIENT_GUID if self is ModuleVariant.CLIENT else SERVER_GUID


# =============================================================================
# RESULTS
# =============================================================================


class PlannedModule:
    """A read module together with its plan and the files it claimed."""

    def __init__(
        self,
        variant: ModuleVariant,
        module: Module,
        type_system: TypeSystem,
        plan: FilePlan,
        claimed: list[FilePlanEntry],
    ):
        self.variant = variant
        self.module = module
        self.type_system = type_system
        self.plan = plan
        self.claimed = claimed

    @property
    def type_count(self) -> int:
        return sum(len(entry.types) for entry in self.plan.sources)

    def resolution_counts(self) -> dict[str, int]:
        counts = {origin.value: 0 for origin in ResolutionOrigin}
        for resolution in self.type_system.references.values():
            counts[resolution.origin.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant": self.variant.value,
            "name": self.module.name,
            "version": str(self.module.version),
            "types": self.type_count,
            "sources": len(self.plan.sources),
            "resources": len(self.plan.resources),
            "planned": len(self.plan),
            "claimed": len(self.claimed),
            "references": self.resolution_counts(),
        }


class RunSummary:
    """What a completed setup run produced."""

    def __init__(
        self,
        output_dir: Path,
        modules: list[PlannedModule],
        report: ExecutionReport,
        duration_seconds: float,
    ):
        self.output_dir = output_dir
        self.modules = modules
        self.report = report
        self.duration_seconds = duration_seconds

    @property
    def files_planned(self) -> int:
        return sum(len(m.claimed) for m in self.modules) + 2 * len(self.modules)

    @property
    def files_written(self) -> int:
        return len(self.report.completed)

    @property
    def items_executed(self) -> int:
        return len(self.report.results)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "output_dir": str(self.output_dir),
            "modules": [m.to_dict() for m in self.modules],
            "files_planned": self.files_planned,
            "files_written": self.files_written,
            "items_executed": self.items_executed,
            "duration_seconds": self.duration_seconds,
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class DecompileTask:
    """
    Regenerate the editable source tree of the client and server modules.

    Example:
        >>> task = DecompileTask(Settings(search_dir=Path("C:/Games/Terraria")))
        >>> summary = await task.run()
        >>> summary.files_written > 0
        True
    """

    def __init__(
        self,
        settings: Settings,
        decompiler: Decompiler | None = None,
        reader: ModuleReader | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """Initialize the task.

        Args:
            settings: Run configuration.
            decompiler: Decompile capability. Defaults to ``ilspycmd``.
            reader: Module reader. Defaults to a dnfile-backed reader over
                the configured search directories.
            token: Cancellation token shared with every work item.
        """
        self.settings = settings
        self.token = token or CancellationToken()
        self.decompiler: Decompiler = decompiler or IlspyCmdDecompiler(
            executable=settings.ilspycmd_path,
            search_dirs=settings.search_dirs,
            formatting=FormattingOptions(
                brace_style=settings.brace_style,
                language_version=settings.language_version,
            ),
        )
        self.reader = reader or ModuleReader(
            search_dirs=settings.search_dirs,
            base_library_name=settings.base_library_name,
            base_library_major_version=settings.base_library_major_version,
        )
        self.planner = FileLayoutPlanner(
            include_type=self.decompiler.include_type,
            library_prefix=settings.library_prefix,
        )
        self.project_writer = ProjectFileWriter(settings.base_library_name)
        self.user_writer = ProjectUserFileWriter()
        self.scheduler = WorkScheduler(settings.degree_of_parallelism, self.token)

    @property
    def output_dir(self) -> Path:
        return self.settings.output_dir

    def variants(self) -> list[ModuleVariant]:
        """Module variants in processing order; the first is primary."""
        if self.settings.server_only:
            return [ModuleVariant.SERVER]
        if self.settings.precedence == "server":
            return [ModuleVariant.SERVER, ModuleVariant.CLIENT]
        return [ModuleVariant.CLIENT, ModuleVariant.SERVER]

    def _module_source(self, variant: ModuleVariant) -> tuple[Path, AssemblyVersion]:
        if variant is ModuleVariant.CLIENT:
            return self.settings.resolve_path(self.settings.client_path), self.settings.client_version
        return self.settings.resolve_path(self.settings.server_path), self.settings.server_version

    # =========================================================================
    # PLANNING
    # =========================================================================

    def plan(self) -> tuple[list[PlannedModule], list[WorkItem]]:
        """
        Read and plan every configured module without writing anything.

        Returns:
            Planned modules in processing order, and the work items that
            would produce the source tree.

        Raises:
            ModuleReadError: If a module cannot be read.
            VersionMismatchError: If a module declares an unexpected version.
            PlanningCollisionError: If two resources share an output path.
            OperationCancelledError: If the token was signaled.
        """
        file_set = GlobalFileSet()
        planned: list[PlannedModule] = []
        items: list[WorkItem] = []

        for variant in self.variants():
            self.token.raise_if_cancelled()
            path, expected_version = self._module_source(variant)

            module = self.reader.read(path, expected_version)
            type_system = TypeSystem(module)
            type_system.resolve_references()
            plan = self.planner.plan(module)

            claimed = [entry for entry in plan if file_set.claim(entry.path, module.name)]
            skipped = len(plan) - len(claimed)
            if skipped:
                logger.info(f"{module.name}: {skipped} files already provided by an earlier module")

            planned_module = PlannedModule(variant, module, type_system, plan, claimed)
            planned.append(planned_module)
            items.extend(self._build_items(planned_module))

        logger.info(f"Planned {len(items)} work items for {len(planned)} modules")
        return planned, items

    def _build_items(self, planned: PlannedModule) -> list[WorkItem]:
        items = [self._file_item(planned.type_system, entry) for entry in planned.claimed]

        module = planned.module
        project_path = self.output_dir / project_file_name(module)
        user_path = self.output_dir / project_user_file_name(module)
        debug_working_dir = str(self.settings.resolve_path(self.settings.search_dir))

        async def write_project() -> None:
            self.token.raise_if_cancelled()
            await asyncio.to_thread(
                self.project_writer.write,
                module,
                planned.plan,
                planned.type_system,
                planned.variant.guid,
                project_path,
            )

        async def write_user_file() -> None:
            self.token.raise_if_cancelled()
            await asyncio.to_thread(self.user_writer.write, module, debug_working_dir, user_path)

        items.append(
            WorkItem(f"Writing: {project_path.name}", write_project, Stage.WRITING_DESCRIPTOR)
        )
        items.append(
            WorkItem(f"Writing: {user_path.name}", write_user_file, Stage.WRITING_DESCRIPTOR)
        )
        return items

    def _file_item(self, type_system: TypeSystem, entry: FilePlanEntry) -> WorkItem:
        target = self.output_dir / entry.path

        if entry.kind is ContentKind.RESOURCE:
            payload = entry.payload

            async def extract() -> None:
                self.token.raise_if_cancelled()
                await asyncio.to_thread(write_bytes_atomic, target, payload.data)

            return WorkItem(f"Extracting: {entry.path}", extract)

        if entry.kind is ContentKind.METADATA:

            async def decompile_metadata() -> None:
                text = await self.decompiler.decompile_module_metadata(type_system, self.token)
                self.token.raise_if_cancelled()
                await asyncio.to_thread(write_text_atomic, target, text)

            return WorkItem(f"Decompiling: {entry.path}", decompile_metadata)

        async def decompile() -> None:
            text = await self.decompiler.decompile_types(type_system, entry.types, self.token)
            self.token.raise_if_cancelled()
            await asyncio.to_thread(write_text_atomic, target, text)

        return WorkItem(f"Decompiling: {entry.path}", decompile)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def reset_output(self) -> None:
        """Delete the old source tree and recreate it empty."""
        if self.output_dir.exists():
            logger.info(f"Deleting old {self.output_dir}")
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True)

    async def run(self) -> RunSummary:
        """
        Regenerate the source tree.

        Returns:
            RunSummary describing the modules read and the files written.

        Raises:
            SetupError: Stage-tagged fault (reading, planning or an item).
            OperationCancelledError: If the run was cancelled.
        """
        started = time.perf_counter()
        try:
            await asyncio.to_thread(self.reset_output)
            planned, items = await asyncio.to_thread(self.plan)
            report = await self.scheduler.execute(items)
        finally:
            await self.decompiler.close()

        summary = RunSummary(
            output_dir=self.output_dir,
            modules=planned,
            report=report,
            duration_seconds=time.perf_counter() - started,
        )
        logger.info(
            f"Wrote {summary.files_written} files to {self.output_dir} "
            f"in {summary.duration_seconds:.1f}s"
        )
        return summary
