"""Tests for template analysis, capacity planning and batch generation."""
import re

import pytest

from utils.code_generator import (
    ALPHANUMERIC_CHARS,
    DEFAULT_OPTIONS,
    NUMERIC_CHARS,
    GeneratorOptions,
    Placeholder,
    PlaceholderKind,
    analyze_template,
    check_capacity,
    generate_codes,
    merge_options,
    needed_chars,
    no_existing_codes,
    plan_widths,
    random_chars,
)
from utils.errors import (
    AttemptsExhaustedError,
    CapacityExceededError,
    CodeGenerationError,
    InvalidOptionsError,
)


# ============================================================================
# random_chars
# ============================================================================


def test_random_chars_length() -> None:
    assert random_chars("A", 66) == "A" * 66


def test_random_chars_uses_only_allowed_chars() -> None:
    rand = random_chars("ABCDEFGHIJKLMNOPQRSTUVWXYZ", 100)
    assert len(rand) == 100
    assert re.search(r"\d", rand) is None


def test_random_chars_zero_count() -> None:
    assert random_chars(NUMERIC_CHARS, 0) == ""


def test_random_chars_rejects_empty_alphabet() -> None:
    with pytest.raises(InvalidOptionsError):
        random_chars("", 3)


# ============================================================================
# Template analysis
# ============================================================================


def test_analyze_template_classifies_in_order() -> None:
    layout = analyze_template("#+#*+*")
    kinds = [p.kind for p in layout.placeholders]
    assert kinds == [
        PlaceholderKind.EXPANDABLE_NUMERIC,
        PlaceholderKind.FIXED_NUMERIC,
        PlaceholderKind.EXPANDABLE_ALPHANUMERIC,
        PlaceholderKind.FIXED_ALPHANUMERIC,
    ]
    assert all(count == 1 for count in layout.counts.values())


def test_analyze_template_keeps_literals() -> None:
    layout = analyze_template("AB-#+-C*")
    assert layout.segments == (
        "AB-",
        Placeholder(PlaceholderKind.EXPANDABLE_NUMERIC, "#+", 3),
        "-C",
        Placeholder(PlaceholderKind.FIXED_ALPHANUMERIC, "*", 7),
    )


def test_expandable_token_is_not_counted_as_fixed() -> None:
    counts = analyze_template("#+").counts
    assert counts[PlaceholderKind.EXPANDABLE_NUMERIC] == 1
    assert counts[PlaceholderKind.FIXED_NUMERIC] == 0


def test_analyze_template_without_placeholders() -> None:
    layout = analyze_template("PLAIN")
    assert layout.segments == ("PLAIN",)
    assert not layout.has_expandable


# ============================================================================
# Capacity planning
# ============================================================================


@pytest.mark.parametrize("how_many,chars,expected", [
    (1, NUMERIC_CHARS, 1),
    (10, NUMERIC_CHARS, 1),
    (11, NUMERIC_CHARS, 2),
    (1000, NUMERIC_CHARS, 3),
    (1001, NUMERIC_CHARS, 4),
    (33, ALPHANUMERIC_CHARS, 1),
    (34, ALPHANUMERIC_CHARS, 2),
    (5, "7", 1),
])
def test_needed_chars(how_many: int, chars: str, expected: int) -> None:
    assert needed_chars(how_many, chars) == expected


def test_plan_widths_splits_deficit_across_occurrences() -> None:
    layout = analyze_template("#+-*+")
    # deficit 100 -> 50 per occurrence -> 10^2 and 33^2 both cover it
    assert plan_widths(layout, 100, 0, DEFAULT_OPTIONS) == [2, 2]


def test_plan_widths_accounts_for_fixed_part_and_existing() -> None:
    layout = analyze_template("#ABC#+")
    options = GeneratorOptions(numeric_chars="01")
    # 2 requested - 2 fixed combinations + 4 existing = 4 -> width 2
    assert plan_widths(layout, 2, 4, options) == [2]


def test_check_capacity_returns_available() -> None:
    layout = analyze_template("#*")
    assert check_capacity(layout, 5, 10, DEFAULT_OPTIONS) == 10 * 33 - 10


def test_check_capacity_error_reports_limits() -> None:
    layout = analyze_template("ABC#")
    with pytest.raises(CapacityExceededError) as exc_info:
        check_capacity(layout, 11, 0, DEFAULT_OPTIONS)

    error = exc_info.value
    assert str(error) == "Cannot generate 11 codes. Maximum: 10, existing: 0, sparsity: 1"
    assert (error.requested, error.maximum, error.existing) == (11, 10, 0)


def test_capacity_error_prints_sparsity_in_full() -> None:
    layout = analyze_template("#")
    with pytest.raises(CapacityExceededError) as exc_info:
        check_capacity(layout, 10, 0, GeneratorOptions(sparsity=4 / 3))
    assert str(exc_info.value).endswith("sparsity: 1.3333333333333333")

    with pytest.raises(CapacityExceededError) as exc_info:
        check_capacity(layout, 11, 0, GeneratorOptions(sparsity=1.0))
    assert str(exc_info.value).endswith("sparsity: 1")


# ============================================================================
# generate_codes
# ============================================================================


def test_creates_enough_numeric_characters() -> None:
    codes = generate_codes("#+", 100, sparsity=1)
    assert len(codes) == 100
    assert all(len(code) == 2 for code in codes)

    codes = generate_codes("#+", 101, sparsity=1)
    assert len(codes) == 101
    assert all(len(code) == 3 for code in codes)


def test_creates_enough_alphanumeric_characters() -> None:
    codes = generate_codes("*+", 33, sparsity=1)
    assert sorted(codes) == sorted(ALPHANUMERIC_CHARS)

    codes = generate_codes("*+", 34, sparsity=1)
    assert all(len(code) == 2 for code in codes)


def test_creates_enough_characters_with_custom_alphabet() -> None:
    codes = generate_codes("#+", 4, numeric_chars="01", sparsity=1)
    assert sorted(codes) == ["00", "01", "10", "11"]

    codes = generate_codes("#+", 5, numeric_chars="01", sparsity=1)
    assert all(len(code) == 3 for code in codes)


def test_respects_fixed_part_of_template() -> None:
    for code in generate_codes("ABC#+123", 20):
        assert code.startswith("ABC")
        assert code.endswith("123")
        assert code[3:-3].isdigit()


def test_excludes_loaded_codes() -> None:
    calls = []

    def loader(template):
        calls.append(template)
        return ["ABC01"]

    codes = generate_codes("ABC#+", 3, numeric_chars="01", existing_codes_loader=loader, sparsity=1)
    assert len(codes) == 3
    assert "ABC01" not in codes
    assert calls == ["ABC#+"]


def test_creates_longer_codes_when_shorter_are_taken() -> None:
    existing = ["0ABC0", "0ABC1", "1ABC0", "1ABC1"]
    codes = generate_codes(
        "#ABC#+", 2,
        numeric_chars="01",
        existing_codes_loader=lambda template: existing,
        sparsity=1
    )
    assert len(codes) == 2
    assert not set(codes) & set(existing)
    assert all(len(code) == 6 for code in codes)


def test_throws_when_too_many_codes_requested() -> None:
    with pytest.raises(CapacityExceededError):
        generate_codes("ABC#", 11, sparsity=1)


def test_fixed_width_codes_fill_the_space() -> None:
    codes = generate_codes("##", 100)
    assert sorted(codes) == [f"{n:02d}" for n in range(100)]


def test_creates_fixed_length_codes_sparsely() -> None:
    codes = generate_codes("##", 66, sparsity=1.5)
    assert len(codes) == 66
    assert len(set(codes)) == 66

    with pytest.raises(CapacityExceededError) as exc_info:
        generate_codes("##", 67, sparsity=1.5)
    assert str(exc_info.value) == "Cannot generate 67 codes. Maximum: 67, existing: 0, sparsity: 1.5"


def test_existing_codes_count_against_fixed_capacity() -> None:
    existing = [f"{n:02d}" for n in range(95)]
    with pytest.raises(CapacityExceededError) as exc_info:
        generate_codes("##", 6, existing_codes_loader=lambda template: existing)
    assert exc_info.value.existing == 95

    codes = generate_codes("##", 5, existing_codes_loader=lambda template: existing)
    assert sorted(codes) == ["95", "96", "97", "98", "99"]


def test_creates_variable_length_codes_sparsely() -> None:
    codes = generate_codes("#+", 10, sparsity=2)
    assert all(len(code) == 2 for code in codes)


def test_every_expandable_occurrence_gets_a_width() -> None:
    for code in generate_codes("#+-#+", 100):
        assert re.fullmatch(r"\d\d-\d\d", code)


def test_template_without_placeholders_has_no_capacity() -> None:
    with pytest.raises(CapacityExceededError) as exc_info:
        generate_codes("PLAIN")
    assert exc_info.value.maximum == 0


def test_quantity_defaults_to_one() -> None:
    assert len(generate_codes("*+")) == 1
    assert len(generate_codes("*+", None)) == 1


def test_rejects_quantity_below_one() -> None:
    with pytest.raises(InvalidOptionsError):
        generate_codes("*+", 0)


def test_loader_returning_none_means_no_codes() -> None:
    codes = generate_codes("#", 10, existing_codes_loader=lambda template: None)
    assert sorted(codes) == list(NUMERIC_CHARS)


def test_options_as_mapping() -> None:
    codes = generate_codes("#+", 4, {"numeric_chars": "01"})
    assert sorted(codes) == ["00", "01", "10", "11"]


def test_custom_placeholder_patterns() -> None:
    codes = generate_codes(
        "ID-{n}{n}-{a+}", 5,
        numeric_pattern=r"\{n\}",
        alphanumeric_more_pattern=r"\{a\+\}"
    )
    assert len(codes) == 5
    for code in codes:
        assert re.fullmatch(rf"ID-\d\d-[{ALPHANUMERIC_CHARS}]+", code)


def test_gives_up_after_consecutive_collisions() -> None:
    with pytest.raises(AttemptsExhaustedError) as exc_info:
        generate_codes("#+", 2, numeric_chars="7", max_collisions=50)

    error = exc_info.value
    assert isinstance(error, CodeGenerationError)
    assert error.generated == 1
    assert error.requested == 2


# ============================================================================
# Options
# ============================================================================


def test_default_options_match_documented_values() -> None:
    explicit = GeneratorOptions(
        numeric_chars="0123456789",
        alphanumeric_chars="123456789ABCDEFGHJKLMNPQRSTUVWXYZ",
        numeric_pattern=r"#(?!\+)",
        alphanumeric_pattern=r"\*(?!\+)",
        numeric_more_pattern=r"#\+",
        alphanumeric_more_pattern=r"\*\+",
        sparsity=1,
        existing_codes_loader=no_existing_codes,
    )
    assert merge_options() == explicit
    assert merge_options(explicit) is explicit


def test_alphanumeric_defaults_exclude_ambiguous_characters() -> None:
    assert len(ALPHANUMERIC_CHARS) == 33
    assert not set("0OI") & set(ALPHANUMERIC_CHARS)
    assert "1" in ALPHANUMERIC_CHARS


def test_merge_options_does_not_touch_defaults() -> None:
    merged = merge_options(sparsity=3)
    assert merged.sparsity == 3
    assert DEFAULT_OPTIONS.sparsity == 1


def test_sparsity_below_one_is_clamped() -> None:
    assert GeneratorOptions(sparsity=0.5).sparsity == 1


@pytest.mark.parametrize("overrides", [
    {"numeric_chars": ""},
    {"alphanumeric_chars": ""},
    {"numeric_pattern": "("},
    {"alphanumeric_more_pattern": r"\**"},
    {"max_collisions": 0},
    {"sparsity": float("inf")},
    {"sparsity": float("nan")},
    {"numeric_pattern": 5},
    {"numeric_pattern": re.compile("#", re.IGNORECASE)},
    # Valid alone, but clashes with the group names of the combined pattern
    {"alphanumeric_pattern": r"(?P<numeric>\*)"},
])
def test_invalid_options_fail_fast(overrides: dict) -> None:
    with pytest.raises(InvalidOptionsError):
        GeneratorOptions(**overrides)


def test_compiled_patterns_are_accepted() -> None:
    options = GeneratorOptions(numeric_pattern=re.compile(r"#(?!\+)"))
    assert options.numeric_pattern == r"#(?!\+)"

    codes = generate_codes("AB#", 3, numeric_pattern=re.compile(r"#"))
    assert len(set(codes)) == 3
    assert all(re.fullmatch(r"AB\d", code) for code in codes)


def test_combined_pattern_is_built_once() -> None:
    options = GeneratorOptions(numeric_chars="01")
    assert options.combined_pattern() is options.combined_pattern()
    assert merge_options(options, sparsity=2).combined_pattern().pattern == options.combined_pattern().pattern
