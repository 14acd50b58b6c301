"""Tests for compiling and evaluating filter expressions."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from mediarr.errors import ExpressionError
from mediarr.filters import compile_rule, compile_rules, item_environment
from mediarr.models import MediaItem


def make_item(**overrides) -> MediaItem:
    values = {
        "provider": "trakt",
        "tmdb_id": 603,
        "imdb_id": "tt0133093",
        "slug": "the-matrix-1999",
        "title": "The Matrix",
        "release_date": date(1999, 3, 31),
        "runtime": 136,
        "countries": ["us"],
        "status": "released",
        "genres": ["action", "science-fiction"],
        "languages": ["en"],
    }
    values.update(overrides)
    return MediaItem(**values)


def test_matching_rule_ignores_item() -> None:
    rules = compile_rules(["Year < 2000"])

    assert rules.matches(make_item()) is True
    assert rules.matches(make_item(release_date=date(2021, 12, 22))) is False


def test_no_rules_never_match() -> None:
    rules = compile_rules([])

    assert len(rules) == 0
    assert rules.matches(make_item()) is False


def test_first_true_rule_wins_in_order() -> None:
    rules = compile_rules(["Runtime > 200", "'action' in Genres", "Year / 0 > 1"])

    # The third rule would fail, but evaluation stops at the second.
    assert rules.matches(make_item()) is True
    assert rules.expressions == ["Runtime > 200", "'action' in Genres", "Year / 0 > 1"]


def test_symbolic_operator_aliases() -> None:
    rule = compile_rule("Runtime < 90 || (Country == 'us' && !(Status == 'canceled'))")
    environment = item_environment(make_item())

    assert rule.evaluate(environment, lambda: datetime(2024, 1, 1)) is True


def test_operator_aliases_inside_strings_are_untouched() -> None:
    rule = compile_rule("Title == 'Rock && Roll!'")
    environment = item_environment(make_item(title="Rock && Roll!"))

    assert rule.evaluate(environment, lambda: datetime(2024, 1, 1)) is True


def test_dates_compare_against_injected_now() -> None:
    rules = compile_rules(["Date > Now()"], clock=lambda: datetime(2020, 1, 1))

    assert rules.matches(make_item(release_date=date(2020, 6, 1))) is True
    assert rules.matches(make_item(release_date=date(2019, 6, 1))) is False


def test_date_attributes_and_helpers() -> None:
    rules = compile_rules(
        ["Date.Month == 3 and len(Genres) == 2 and lower(Title) == 'the matrix'"]
    )

    assert rules.matches(make_item()) is True


def test_missing_character_reads_as_empty_string() -> None:
    rules = compile_rules(["Character == ''"])

    assert rules.matches(make_item()) is True
    assert rules.matches(make_item(character="Neo")) is False


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "Year <",
        "Rating > 5",
        "__import__('os').system('true')",
        "Title.upper() == 'X'",
        "Genres[0] == 'action'",
        "lambda: True",
    ],
)
def test_invalid_expressions_fail_to_compile(expression: str) -> None:
    with pytest.raises(ExpressionError):
        compile_rule(expression)


def test_non_boolean_expression_rejected() -> None:
    with pytest.raises(ExpressionError, match="boolean"):
        compile_rule("Runtime + 1")


def test_mistyped_comparison_rejected() -> None:
    with pytest.raises(ExpressionError):
        compile_rule("Title < 5")


def test_one_bad_rule_aborts_compilation() -> None:
    with pytest.raises(ExpressionError) as excinfo:
        compile_rules(["Year < 2000", "Year <<< 2"])

    assert excinfo.value.expression == "Year <<< 2"


def test_evaluation_failure_raises() -> None:
    """Runtime failures surface as errors so callers can treat them as a match."""

    rules = compile_rules(["Runtime / 0 > 1"])

    with pytest.raises(ExpressionError):
        rules.matches(make_item())
