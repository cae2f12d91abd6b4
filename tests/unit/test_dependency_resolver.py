"""Unit tests for dependency resolution."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from conftest import RELOGIC_IMAGE, RELOGIC_PAYLOAD, FakeModuleParser, make_ref

from modsetup.modules.models import EmbeddedPayload, Module, ResolutionOrigin
from modsetup.modules.resolver import EmbeddedDependencyResolver, SearchPathResolver


@pytest.fixture
def resolver(
    game_dir: Path,
    parser: FakeModuleParser,
    client_module: Module,
) -> EmbeddedDependencyResolver:
    """Resolver bound to a fresh copy of the client module."""
    resolver = EmbeddedDependencyResolver(SearchPathResolver([game_dir], parser), parser)
    resolver.bind(client_module.model_copy())
    return resolver


class SlowParser(FakeModuleParser):
    """Parser that takes long enough for lookups to overlap."""

    def parse_bytes(self, data: bytes, name: str) -> Module:
        time.sleep(0.05)
        return super().parse_bytes(data, name)


# =============================================================================
# SEARCH PATH
# =============================================================================


class TestSearchPathResolver:
    """Tests for SearchPathResolver."""

    def test_finds_dll(self, game_dir: Path, parser: FakeModuleParser) -> None:
        module = SearchPathResolver([game_dir], parser).find(make_ref("FNA"))

        assert module is not None
        assert module.name == "FNA"
        assert module.source_path == str(game_dir / "FNA.dll")

    def test_falls_back_to_exe(self, game_dir: Path, parser: FakeModuleParser) -> None:
        module = SearchPathResolver([game_dir], parser).find(make_ref("TerrariaServer"))

        assert module is not None
        assert module.file_name == "TerrariaServer.exe"

    def test_missing(self, game_dir: Path, parser: FakeModuleParser) -> None:
        assert SearchPathResolver([game_dir], parser).find(make_ref("Nope")) is None

    def test_unreadable_candidate_skipped(self, tmp_path: Path, parser: FakeModuleParser) -> None:
        (tmp_path / "Broken.dll").write_bytes(b"garbage")

        assert SearchPathResolver([tmp_path], parser).find(make_ref("Broken")) is None

    def test_add_directory(self, tmp_path: Path, game_dir: Path, parser: FakeModuleParser) -> None:
        resolver = SearchPathResolver([tmp_path], parser)
        resolver.add_directory(game_dir)
        resolver.add_directory(game_dir)

        assert resolver.directories == [tmp_path, game_dir]
        assert resolver.find(make_ref("FNA")) is not None


# =============================================================================
# EMBEDDED RESOLVER
# =============================================================================


class TestEmbeddedDependencyResolver:
    """Tests for EmbeddedDependencyResolver."""

    def test_embedded_payload_preferred(self, resolver: EmbeddedDependencyResolver) -> None:
        resolution = resolver.resolve(make_ref("ReLogic"))

        assert resolution.origin is ResolutionOrigin.EMBEDDED
        assert resolution.payload_name == RELOGIC_PAYLOAD
        assert resolution.module is not None
        assert resolution.module.resolver is resolver

    def test_search_path_fallback(self, resolver: EmbeddedDependencyResolver) -> None:
        resolution = resolver.resolve(make_ref("FNA", "17.0.0.0"))

        assert resolution.origin is ResolutionOrigin.SEARCH_PATH
        assert resolution.found
        assert resolution.payload_name is None

    def test_not_found_is_cached(self, resolver: EmbeddedDependencyResolver) -> None:
        reference = make_ref("System.Missing")

        first = resolver.resolve(reference)
        second = resolver.resolve(reference)

        assert first.origin is ResolutionOrigin.NOT_FOUND
        assert second is first
        assert resolver.stats.search_path_lookups == 1
        assert reference.full_name in resolver.cached

    def test_base_library_other_major_skipped(
        self,
        resolver: EmbeddedDependencyResolver,
        parser: FakeModuleParser,
    ) -> None:
        before = parser.calls.copy()

        resolution = resolver.resolve(make_ref("mscorlib", "2.0.0.0", "b77a5c561934e089"))

        assert resolution.origin is ResolutionOrigin.SKIPPED
        assert not resolution.found
        assert parser.calls == before
        assert resolver.stats.skipped == 1

    def test_base_library_same_major_resolved(self, resolver: EmbeddedDependencyResolver) -> None:
        resolution = resolver.resolve(make_ref("mscorlib", "4.0.0.0", "b77a5c561934e089"))

        assert resolution.origin is ResolutionOrigin.NOT_FOUND
        assert resolver.stats.search_path_lookups == 1

    def test_second_lookup_is_cache_hit(
        self,
        resolver: EmbeddedDependencyResolver,
        parser: FakeModuleParser,
    ) -> None:
        reference = make_ref("ReLogic")
        first = resolver.resolve(reference)
        calls = parser.calls.copy()
        embedded_searches = resolver.stats.embedded_searches

        second = resolver.resolve(reference)

        assert second is first
        assert parser.calls == calls
        assert resolver.stats.embedded_searches == embedded_searches
        assert resolver.stats.search_path_lookups == 0
        assert resolver.stats.cache_hits == 1

    def test_cache_keyed_by_full_name(self, resolver: EmbeddedDependencyResolver) -> None:
        resolver.resolve(make_ref("FNA", "17.0.0.0"))
        resolver.resolve(make_ref("FNA", "18.0.0.0"))

        assert resolver.stats.cache_hits == 0
        assert len(resolver.cached) == 2

    def test_concurrent_lookups_resolve_once(
        self,
        game_dir: Path,
        client_module: Module,
        relogic_module: Module,
    ) -> None:
        parser = SlowParser(images={RELOGIC_IMAGE: relogic_module})
        resolver = EmbeddedDependencyResolver(SearchPathResolver([game_dir], parser), parser)
        resolver.bind(client_module.model_copy())
        reference = make_ref("ReLogic")
        barrier = threading.Barrier(8)

        def lookup():
            barrier.wait()
            return resolver.resolve(reference)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: lookup(), range(8)))

        assert parser.calls["parse_bytes"] == 1
        assert resolver.stats.embedded_searches == 1
        assert resolver.stats.cache_hits == 7
        assert all(r is results[0] for r in results)

    def test_first_matching_payload_wins(
        self,
        game_dir: Path,
        parser: FakeModuleParser,
        relogic_module: Module,
    ) -> None:
        module = Module(
            name="Host",
            file_name="Host.exe",
            version="1.0",
            payloads=(
                EmbeddedPayload(name="A.ReLogic.dll", data=RELOGIC_IMAGE),
                EmbeddedPayload(name="B.ReLogic.dll", data=b"other"),
            ),
        )
        resolver = EmbeddedDependencyResolver(SearchPathResolver([game_dir], parser), parser)
        resolver.bind(module)

        resolution = resolver.resolve(make_ref("ReLogic"))

        assert resolution.payload_name == "A.ReLogic.dll"

    def test_unparsable_payload_falls_through(
        self,
        game_dir: Path,
        parser: FakeModuleParser,
    ) -> None:
        module = Module(
            name="Host",
            file_name="Host.exe",
            version="1.0",
            payloads=(EmbeddedPayload(name="Libs.FNA.dll", data=b"not a module"),),
        )
        resolver = EmbeddedDependencyResolver(SearchPathResolver([game_dir], parser), parser)
        resolver.bind(module)

        resolution = resolver.resolve(make_ref("FNA", "17.0.0.0"))

        assert resolution.origin is ResolutionOrigin.SEARCH_PATH

    def test_rebinding_module_to_other_resolver_fails(
        self,
        resolver: EmbeddedDependencyResolver,
        parser: FakeModuleParser,
    ) -> None:
        other = EmbeddedDependencyResolver(SearchPathResolver([], parser), parser)

        with pytest.raises(ValueError):
            other.bind(resolver.base_module)
