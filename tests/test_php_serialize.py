"""Tests for serialized value checks."""

import pytest

from utils.php_serialize import is_corrupted, is_valid_serialized, looks_serialized


def _s(text: str) -> str:
    return f's:{len(text.encode("utf-8"))}:"{text}";'


class TestLooksSerialized:
    """Shape detection."""

    @pytest.mark.parametrize("value", ["a:0:{}", _s("x"), "i:5;", "b:1;", "N;", "d:0.5;"])
    def test_serialized_shapes(self, value: str) -> None:
        """Every scalar and container prefix is recognized."""
        assert looks_serialized(value)

    @pytest.mark.parametrize("value", ["https://example.com", "", "a:b", None, 5, '{"json": true}'])
    def test_plain_values(self, value) -> None:
        """URLs, JSON and non-strings are not serialized."""
        assert not looks_serialized(value)


class TestIsValidSerialized:
    """Structural parsing."""

    def test_nested_array(self) -> None:
        """Arrays of strings and numbers parse."""
        url = "https://example.com/logo.png"
        value = f'a:2:{{{_s("logo")}{_s(url)}i:0;a:1:{{i:0;b:1;}}}}'
        assert is_valid_serialized(value)

    def test_object(self) -> None:
        """Objects with a class name parse."""
        value = f'O:8:"stdClass":1:{{{_s("url")}{_s("https://example.com")}}}'
        assert is_valid_serialized(value)

    def test_multibyte_lengths_are_bytes(self) -> None:
        """Lengths are counted in UTF-8 bytes like PHP does."""
        assert is_valid_serialized('s:5:"café";')
        assert not is_valid_serialized('s:4:"café";')

    def test_stale_length_after_replace(self) -> None:
        """A shorter URL inside an unchanged length is detected."""
        original = f'a:1:{{{_s("logo")}{_s("https://stage.example.com/logo.png")}}}'
        replaced = original.replace("https://stage.example.com", "https://example.com")

        assert is_valid_serialized(original)
        assert not is_valid_serialized(replaced)

    def test_trailing_garbage(self) -> None:
        """Extra bytes after the value are invalid."""
        assert not is_valid_serialized("i:1;i:2;")


class TestIsCorrupted:
    """Combined check used by the validator."""

    def test_plain_text_never_corrupted(self) -> None:
        """Non-serialized values are skipped."""
        assert not is_corrupted("see https://example.com")

    def test_broken_value(self) -> None:
        """A serialized-looking value that does not parse is corrupted."""
        assert is_corrupted('a:1:{s:3:"url";s:40:"https://example.com";}')
