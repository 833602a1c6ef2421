"""Tests for versions, version requirements and requirement parsing."""

import pytest

from depsync.errors import InvalidRequirementError, InvalidVersionError
from depsync.package import VersionControlSource
from depsync.versioning import (
    Platform,
    RequirementKind,
    Version,
    VersionRequirement,
    parse_dependency,
    parse_dependency_field,
    parse_requirement,
    satisfies,
)


class TestVersion:
    """Test Version parsing and ordering."""

    def test_dash_and_dot_are_equivalent(self):
        """R style 1.2-3 equals 1.2.3."""
        assert Version("1.2-3") == Version("1.2.3")
        assert hash(Version("1.2-3")) == hash(Version("1.2.3"))

    def test_trailing_zeros_compare_equal(self):
        """Missing trailing components count as zero."""
        assert Version("1.0") == Version("1.0.0")
        assert Version("1") == Version("1.0")

    def test_str_keeps_original_text(self):
        """The original spelling is preserved for display and persistence."""
        assert str(Version("1.2-3")) == "1.2-3"

    def test_ordering_is_numeric(self):
        """Components compare as integers, not strings."""
        assert Version("1.10") > Version("1.9")
        assert Version("2.0") > Version("1.99.99")
        assert sorted([Version("1.2"), Version("1.10"), Version("1.1.5")]) == [
            Version("1.1.5"),
            Version("1.2"),
            Version("1.10"),
        ]

    def test_next_major_and_minor(self):
        """Upper bounds for caret and tilde requirements."""
        assert Version("2.1.3").next_major() == Version("3")
        assert Version("2.1.3").next_minor() == Version("2.2")

    @pytest.mark.parametrize("text", ["", "abc", "1..2", "1.2-", "-1", "v1.0", None])
    def test_invalid_versions(self, text):
        """Malformed versions raise InvalidVersionError, which is a ValueError."""
        with pytest.raises(InvalidVersionError):
            Version(text)
        with pytest.raises(ValueError):
            Version(text)


class TestParseRequirement:
    """Test requirement text parsing."""

    def test_any_forms(self):
        """Empty text, star and latest mean any version."""
        for text in (None, "", "*", "latest", "()"):
            assert parse_requirement(text).kind is RequirementKind.ANY

    def test_exact_and_bare_version(self):
        """Bare and == versions are exact pins."""
        req = parse_requirement("== 1.2")
        assert req.kind is RequirementKind.EXACT
        assert req.version == Version("1.2")
        assert parse_requirement("1.2") == req

    def test_at_least_with_parentheses(self):
        """DESCRIPTION style (>= 1.0) is an at-least requirement."""
        req = parse_requirement("(>= 1.0)")
        assert req.kind is RequirementKind.AT_LEAST
        assert req.satisfies(Version("1.0"))
        assert not req.satisfies(Version("0.9"))

    def test_caret_range(self):
        """^2 accepts 2.x but not 3.0."""
        req = parse_requirement("^2")
        assert req.kind is RequirementKind.RANGE
        assert req.satisfies(Version("2.1"))
        assert not req.satisfies(Version("3.0"))
        assert not req.satisfies(Version("1.9"))

    def test_tilde_range(self):
        """~1.4 accepts 1.4.x but not 1.5."""
        req = parse_requirement("~1.4")
        assert req.satisfies(Version("1.4.7"))
        assert not req.satisfies(Version("1.5"))

    def test_hyphen_range_is_inclusive(self):
        """a - b includes both ends."""
        req = parse_requirement("1.0 - 2.0")
        assert req.satisfies(Version("1.0"))
        assert req.satisfies(Version("2.0"))
        assert not req.satisfies(Version("2.0.1"))

    def test_comma_comparators(self):
        """Comma-separated comparators are folded into one range."""
        req = parse_requirement(">= 1.0, < 2.0")
        assert req.kind is RequirementKind.RANGE
        assert req.satisfies(Version("1.5"))
        assert not req.satisfies(Version("2.0"))

    def test_pinned_ref(self):
        """@ref pins a version-control reference."""
        req = parse_requirement("@main")
        assert req.kind is RequirementKind.PINNED_REF
        assert req.ref == "main"

    @pytest.mark.parametrize("text", [">= abc", "@", "2.0 - 1.0", "> 2, < 1", "!= 1.0", ">>1"])
    def test_invalid_requirements(self, text):
        """Malformed requirements raise InvalidRequirementError."""
        with pytest.raises(InvalidRequirementError):
            parse_requirement(text)


class TestParseDependency:
    """Test dependency entry parsing."""

    def test_colon_form(self):
        """name: requirement."""
        name, req = parse_dependency("A: >=1.0")
        assert name == "A"
        assert req == VersionRequirement.at_least("1.0")

    def test_description_form(self):
        """name (requirement)."""
        name, req = parse_dependency("Rcpp (>= 1.0.5)")
        assert name == "Rcpp"
        assert req.satisfies(Version("1.0.5"))

    def test_name_only(self):
        """A bare name accepts any version."""
        name, req = parse_dependency("data.table")
        assert name == "data.table"
        assert req.kind is RequirementKind.ANY

    def test_dependency_field(self):
        """Commas inside parentheses do not split entries; whitespace is normalized."""
        field = "R (>= 3.5),\n    Rcpp (>= 1.0, < 2.0), methods"
        parsed = parse_dependency_field(field)
        assert [name for name, _ in parsed] == ["R", "Rcpp", "methods"]
        assert parsed[1][1].satisfies(Version("1.5"))
        assert parse_dependency_field(None) == []


class TestSatisfies:
    """Test the requirement predicate."""

    def test_functional_form_matches_method(self):
        """satisfies() delegates to the requirement."""
        req = VersionRequirement.between("1.0", "2.0", max_inclusive=False)
        assert satisfies(req, Version("1.5"))
        assert not satisfies(req, Version("2.0"))

    def test_exclusive_lower_bound(self):
        """A strict lower bound excludes its own version."""
        req = parse_requirement("> 1.0")
        assert not req.satisfies(Version("1.0"))
        assert req.satisfies(Version("1.0.1"))

    def test_pinned_ref_needs_matching_vcs_source(self):
        """Pinned refs only match version-control sources at that ref or sha."""
        req = VersionRequirement.pinned("v1.0")
        source = VersionControlSource("https://example.org/a.git", "v1.0", "a" * 40)
        other = VersionControlSource("https://example.org/a.git", "main", "b" * 40)
        assert req.satisfies(Version("1.0"), source)
        assert not req.satisfies(Version("1.0"), other)
        assert not req.satisfies(Version("1.0"))

    def test_pinned_sha_prefix(self):
        """A pin on a commit prefix matches the resolved sha."""
        req = VersionRequirement.pinned("abc1234")
        source = VersionControlSource("https://example.org/a.git", "main", "abc1234" + "0" * 33)
        assert req.satisfies(Version("0.1"), source)

    def test_str_forms(self):
        """Requirements render in a readable canonical form."""
        assert str(VersionRequirement.any()) == "*"
        assert str(VersionRequirement.exact("1.0")) == "== 1.0"
        assert str(VersionRequirement.at_least("1.0")) == ">= 1.0"
        assert str(VersionRequirement.pinned("main")) == "@main"
        assert str(VersionRequirement.between("1", "2", min_inclusive=False)) == "> 1, <= 2"


class TestPlatform:
    """Test platform compatibility."""

    def test_same_series_is_compatible(self):
        """Patch releases of the toolchain share binaries."""
        a = Platform("linux", "x86_64", "4.3.1")
        b = Platform("linux", "x86_64", "4.3.2")
        assert a.toolchain_series == (4, 3)
        assert a.is_compatible_with(b)

    def test_other_series_or_arch_is_not(self):
        """Minor toolchain bumps and other architectures are incompatible."""
        a = Platform("linux", "x86_64", "4.3.1")
        assert not a.is_compatible_with(Platform("linux", "x86_64", "4.4.0"))
        assert not a.is_compatible_with(Platform("linux", "aarch64", "4.3.1"))
        assert not a.is_compatible_with(None)
