"""Tests for bias coordinates."""

import math

import pytest

from balanced_news.core.domain.exceptions import ValidationError
from balanced_news.modules.sources.domain.bias import ORIGIN, BiasCoordinate


def test_distance_is_euclidean() -> None:
    assert BiasCoordinate(0.0, 0.0).distance_to(BiasCoordinate(0.3, 0.4)) == pytest.approx(0.5)
    assert ORIGIN.distance_to(ORIGIN) == 0.0


def test_mirrored_negates_both_axes_without_negative_zero() -> None:
    assert BiasCoordinate(0.3, -0.7).mirrored() == BiasCoordinate(-0.3, 0.7)
    mirrored_origin = ORIGIN.mirrored()
    assert math.copysign(1.0, mirrored_origin.x) == 1.0
    assert math.copysign(1.0, mirrored_origin.y) == 1.0


def test_from_input_accepts_in_range_values() -> None:
    assert BiasCoordinate.from_input(1, -1) == BiasCoordinate(1.0, -1.0)


def test_from_input_strict_rejects_out_of_range() -> None:
    with pytest.raises(ValidationError, match="within"):
        BiasCoordinate.from_input(1.5, 0.0, strict=True)


def test_from_input_permissive_clamps() -> None:
    assert BiasCoordinate.from_input(1.5, -3.0, strict=False) == BiasCoordinate(1.0, -1.0)


@pytest.mark.parametrize("bad", ["0.1", None, True, float("nan"), float("inf")])
def test_from_input_rejects_non_numeric_in_any_mode(bad: object) -> None:
    with pytest.raises(ValidationError):
        BiasCoordinate.from_input(bad, 0.0, strict=False)
