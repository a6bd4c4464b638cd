"""Tests for store/version.py filename codec."""

from __future__ import annotations

import pytest

from capsuleos.store.version import (
    LogicalKey,
    VersionTag,
    archive_path,
    build_filename,
    explicit_v1_filename,
    is_archived,
    logical_key,
    module_of,
    parse_filename,
    to_posix,
)


class TestParseFilename:
    """Tests for parse_filename."""

    @pytest.mark.parametrize(
        ("name", "base", "version", "ext"),
        [
            ("note.md", "note", 1, ".md"),
            ("idea.json", "idea", 1, ".json"),
            ("idea.v1.json", "idea", 1, ".json"),
            ("idea.v2.json", "idea", 2, ".json"),
            ("idea.v12.json", "idea", 12, ".json"),
            ("my.idea.v3.json", "my.idea", 3, ".json"),
            ("README", "README", 1, ""),
        ],
    )
    def test_parses_base_version_ext(self, name: str, base: str, version: int, ext: str) -> None:
        tag = parse_filename(name)
        assert (tag.base, tag.version, tag.ext) == (base, version, ext)

    def test_uses_only_last_path_component(self) -> None:
        tag = parse_filename("capsules/archive/idea.v4.json")
        assert tag == VersionTag(base="idea", version=4, ext=".json")

    def test_v0_is_not_a_version_suffix(self) -> None:
        tag = parse_filename("draft.v0.md")
        assert tag.base == "draft.v0"
        assert tag.version == 1
        assert tag.explicit is False

    def test_leading_zeros_are_accepted(self) -> None:
        assert parse_filename("draft.v007.md").version == 7

    def test_vx_is_part_of_base(self) -> None:
        tag = parse_filename("notes.vx.md")
        assert tag.base == "notes.vx"
        assert tag.version == 1


class TestVersionOneEncodings:
    """Both version-1 encodings resolve to the same tag."""

    def test_plain_and_explicit_compare_equal(self) -> None:
        plain = parse_filename("foo.md")
        explicit = parse_filename("foo.v1.md")
        assert plain == explicit
        assert hash(plain) == hash(explicit)

    def test_explicit_flag_distinguishes_encodings(self) -> None:
        assert parse_filename("foo.md").explicit is False
        assert parse_filename("foo.v1.md").explicit is True

    def test_explicit_v1_filename(self) -> None:
        assert explicit_v1_filename("foo", ".md") == "foo.v1.md"
        assert explicit_v1_filename("foo", "md") == "foo.v1.md"


class TestBuildFilename:
    """Tests for build_filename."""

    def test_version_one_is_unsuffixed(self) -> None:
        assert build_filename("idea", 1, ".json") == "idea.json"

    def test_later_versions_are_suffixed(self) -> None:
        assert build_filename("idea", 3, ".json") == "idea.v3.json"

    def test_adds_missing_dot(self) -> None:
        assert build_filename("idea", 2, "json") == "idea.v2.json"

    @pytest.mark.parametrize("version", [0, -1])
    def test_rejects_non_positive_versions(self, version: int) -> None:
        with pytest.raises(ValueError, match="version must be >= 1"):
            build_filename("idea", version, ".json")

    @pytest.mark.parametrize("name", ["idea.json", "idea.v2.json", "a.b.v9.md", "plain.md"])
    def test_build_inverts_parse_for_canonical_names(self, name: str) -> None:
        tag = parse_filename(name)
        assert build_filename(tag.base, tag.version, tag.ext) == name


class TestPathHelpers:
    """Tests for logical_key, is_archived, module_of and archive_path."""

    def test_logical_key_groups_versions(self) -> None:
        assert logical_key("capsules/idea.json") == logical_key("capsules/idea.v2.json")
        assert logical_key("capsules/idea.json") == LogicalKey("capsules", "idea", ".json")

    def test_logical_key_separates_directories(self) -> None:
        assert logical_key("capsules/idea.json") != logical_key("archive/capsules/idea.json")

    def test_logical_key_top_level_file(self) -> None:
        key = logical_key("idea.md")
        assert key.directory == ""
        assert str(key) == "idea.md"

    def test_to_posix_normalizes_separators(self) -> None:
        assert to_posix("notes\\daily\\a.md") == "notes/daily/a.md"
        assert to_posix("./notes/a.md") == "notes/a.md"

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("archive/capsules/a.json", True),
            ("archive/a.md", True),
            ("capsules/archive/a.json", False),
            ("notes/a.md", False),
            ("archived/a.md", False),
        ],
    )
    def test_is_archived_checks_first_segment(self, path: str, expected: bool) -> None:
        assert is_archived(path) is expected

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("notes/a.md", "notes"),
            ("archive/capsules/a.json", "capsules"),
            ("tracker/logs/2024.json", "tracker"),
            ("a.md", ""),
        ],
    )
    def test_module_of(self, path: str, expected: str) -> None:
        assert module_of(path) == expected

    def test_archive_path_round_trip(self) -> None:
        assert archive_path("capsules", True) == "archive/capsules"
        assert archive_path("archive/capsules", False) == "capsules"
        assert archive_path("capsules", False) == "capsules"
        assert archive_path("archive/capsules", True) == "archive/capsules"
