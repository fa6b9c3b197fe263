"""Tests for input and tag sanitization."""

from listgenius.utils.sanitizers import (
    is_valid_tag,
    normalize_tag_list,
    sanitize_input,
    sanitize_tag,
    split_list_cell,
)


class TestSanitizeInput:
    def test_strips_angle_brackets(self):
        assert sanitize_input("<b>Mug</b>") == "bMug/b"

    def test_strips_script_vectors(self):
        assert sanitize_input("javascript:alert(1) onclick=run()") == "alert(1) run()"

    def test_empty(self):
        assert sanitize_input("") == ""


class TestSanitizeTag:
    def test_removes_forbidden_symbols(self):
        assert sanitize_tag("gifts & #mugs!") == "gifts mugs"

    def test_commas_become_spaces(self):
        assert sanitize_tag("wall,art") == "wall art"

    def test_truncates_to_twenty(self):
        result = sanitize_tag("a very long tag that goes on and on")
        assert len(result) <= 20
        assert result == "a very long tag that"

    def test_is_valid_tag(self):
        assert is_valid_tag("boho decor")
        assert not is_valid_tag("")
        assert not is_valid_tag("x" * 21)
        assert not is_valid_tag("50% off")


class TestNormalizeTagList:
    def test_pads_to_count(self):
        result = normalize_tag_list(["boho", "art"], 13, "tag")
        assert len(result) == 13
        assert result[:3] == ["boho", "art", "tag3"]
        assert result[-1] == "tag13"

    def test_truncates_to_count(self):
        result = normalize_tag_list([f"t{i}" for i in range(20)], 13, "tag")
        assert result == [f"t{i}" for i in range(13)]

    def test_drops_duplicates_and_empties(self):
        result = normalize_tag_list(["Boho", "boho", "", "!!!", None, "art"], 4, "material")
        assert result == ["Boho", "art", "material3", "material4"]

    def test_padding_skips_placeholders_already_present(self):
        result = normalize_tag_list(["tag2"], 13, "tag")
        assert len(result) == 13
        assert len({tag.lower() for tag in result}) == 13
        assert result[:2] == ["tag2", "tag3"]
        assert result[-1] == "tag14"

    def test_drops_entries_that_are_not_valid_tags(self):
        result = normalize_tag_list(["   ", "&&&", "boho"], 2, "tag")
        assert result == ["boho", "tag2"]


class TestSplitListCell:
    def test_splits_on_comma_semicolon_pipe(self):
        assert split_list_cell("a, b;c | d") == ["a", "b", "c", "d"]

    def test_empty(self):
        assert split_list_cell("") == []
