"""Unit tests for file naming helpers."""

import pytest

from modsetup.planning.naming import (
    MAX_SEGMENT_LENGTH,
    clean_up_file_name,
    escape_file_name,
    is_culture_name,
    path_key,
    to_windows_path,
)


class TestCleanUpFileName:
    """Tests for clean_up_file_name."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Main", "Main"),
            ("List`1", "List"),
            ("Dictionary`2", "Dictionary"),
            ("Foo:Bar", "Foo"),
            ("Terraria.GameContent.UI", "Terraria.GameContent.UI"),
            ("A..B", "A.-B"),
            ("Weird Name!", "Weird-Name-"),
            ("snake_case-name", "snake_case-name"),
        ],
    )
    def test_clean_up(self, text: str, expected: str) -> None:
        """Test the character whitelist and cut points."""
        assert clean_up_file_name(text) == expected

    @pytest.mark.parametrize("name", ["CON", "prn", "Aux", "NUL", "COM1", "LPT9"])
    def test_reserved_device_names(self, name: str) -> None:
        """Test reserved device names get an underscore suffix."""
        assert clean_up_file_name(name) == name + "_"

    def test_not_reserved_lookalike(self) -> None:
        """Test names that only start like a device name are kept."""
        assert clean_up_file_name("Console") == "Console"
        assert clean_up_file_name("COM10") == "COM10"

    def test_truncates_long_names(self) -> None:
        """Test overlong names are truncated."""
        assert len(clean_up_file_name("A" * 1000)) == MAX_SEGMENT_LENGTH

    def test_empty_name(self) -> None:
        """Test an unusable name still yields a segment."""
        assert clean_up_file_name("") == "-"


class TestEscapeFileName:
    """Tests for escape_file_name."""

    def test_keeps_dots(self) -> None:
        assert escape_file_name("Terraria.Libraries") == "Terraria.Libraries"

    def test_replaces_invalid_characters(self) -> None:
        assert escape_file_name('a<b>c:d"e|f?g*h') == "a-b-c-d-e-f-g-h"

    def test_reserved_name(self) -> None:
        assert escape_file_name("aux.json") == "aux.json_"

    @pytest.mark.parametrize("segment", ["", "..", "   "])
    def test_unnameable_segment(self, segment: str) -> None:
        assert escape_file_name(segment) == "-"


class TestCultureName:
    """Tests for is_culture_name."""

    @pytest.mark.parametrize("tag", ["en-US", "de", "de-DE", "zh-Hans", "pt-BR", "ru-RU"])
    def test_cultures(self, tag: str) -> None:
        assert is_culture_name(tag)

    @pytest.mark.parametrize(
        "tag", ["Strings", "Images", "Main", "", "en_US!", "1234", "root", "und", "und-US"]
    )
    def test_not_cultures(self, tag: str) -> None:
        assert not is_culture_name(tag)


class TestPathKeys:
    """Tests for path comparison helpers."""

    def test_case_insensitive(self) -> None:
        assert path_key("Terraria/Player.cs") == path_key("terraria\\PLAYER.cs")

    def test_windows_path(self) -> None:
        assert to_windows_path("Terraria.Libraries/ReLogic/ReLogic.dll") == (
            "Terraria.Libraries\\ReLogic\\ReLogic.dll"
        )
