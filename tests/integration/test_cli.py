"""Integration tests for the command line interface."""

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FakeDecompiler
from typer.testing import CliRunner

from modsetup import __version__
from modsetup.cli.main import app
from modsetup.core.config import Settings
from modsetup.core.orchestrator import DecompileTask
from modsetup.execution.scheduler import CancellationToken
from modsetup.modules.reader import ModuleReader


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_args(game_dir: Path, tmp_path: Path) -> list[str]:
    return [
        "--client",
        str(game_dir / "Terraria.exe"),
        "--server",
        str(game_dir / "TerrariaServer.exe"),
        "--search-dir",
        str(game_dir),
        "--output",
        str(tmp_path / "out"),
    ]


def fake_task_factory(reader: ModuleReader, decompiler: FakeDecompiler | None = None):
    def create_task(settings: Settings, token: CancellationToken) -> DecompileTask:
        return DecompileTask(
            settings,
            decompiler=decompiler or FakeDecompiler(),
            reader=reader,
            token=token,
        )

    return create_task


class TestCli:
    """Tests for the modsetup CLI."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_decompile(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
        tmp_path: Path,
    ) -> None:
        with patch("modsetup.cli.main.create_task", fake_task_factory(reader)):
            result = runner.invoke(app, ["decompile", *cli_args, "--parallelism", "2"])

        assert result.exit_code == 0, result.stdout
        assert "Run Summary" in result.stdout
        assert (tmp_path / "out" / "Terraria.csproj").is_file()
        assert (tmp_path / "out" / "TerrariaServer.csproj").is_file()

    def test_decompile_server_only(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
        tmp_path: Path,
    ) -> None:
        with patch("modsetup.cli.main.create_task", fake_task_factory(reader)):
            result = runner.invoke(app, ["decompile", *cli_args, "--server-only", "--single-thread"])

        assert result.exit_code == 0, result.stdout
        assert not (tmp_path / "out" / "Terraria.csproj").exists()
        assert (tmp_path / "out" / "TerrariaServer.csproj").is_file()

    def test_decompile_failure_names_stage(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
        tmp_path: Path,
    ) -> None:
        args = [*cli_args, "--client", str(tmp_path / "missing.exe")]

        with patch("modsetup.cli.main.create_task", fake_task_factory(reader)):
            result = runner.invoke(app, ["decompile", *args])

        assert result.exit_code == 1
        assert "reading module" in result.stdout

    def test_decompile_item_failure(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
    ) -> None:
        factory = fake_task_factory(reader, FakeDecompiler(fail_on="Terraria.Main"))

        with patch("modsetup.cli.main.create_task", factory):
            result = runner.invoke(app, ["decompile", *cli_args])

        assert result.exit_code == 1
        assert "executing item" in result.stdout
        assert "Terraria/Main.cs" in result.stdout

    def test_decompile_cancelled(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
    ) -> None:
        factory = fake_task_factory(reader, FakeDecompiler(cancel_on="Terraria.Main"))

        with patch("modsetup.cli.main.create_task", factory):
            result = runner.invoke(app, ["decompile", *cli_args])

        assert result.exit_code == 130

    def test_invalid_precedence(self, runner: CliRunner, cli_args: list[str]) -> None:
        result = runner.invoke(app, ["decompile", *cli_args, "--precedence", "both"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_plan(
        self,
        runner: CliRunner,
        reader: ModuleReader,
        cli_args: list[str],
        tmp_path: Path,
    ) -> None:
        with patch("modsetup.cli.main.create_task", fake_task_factory(reader)):
            result = runner.invoke(app, ["plan", *cli_args])

        assert result.exit_code == 0, result.stdout
        assert "Module Plan" in result.stdout
        assert "11 work items" in result.stdout
        assert not (tmp_path / "out").exists()
