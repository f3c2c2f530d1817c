"""
Unit tests for the sensor value comparator. Pure functions, no DB.
"""
import pytest

from aura.services.comparator import ComparisonError, compare, evaluate_comparison
from aura.services.sensor_catalog import SensorType


class TestNumeric:
    @pytest.mark.parametrize("operator,threshold,expected", [
        ("==", 30, False),
        ("!=", 30, True),
        ("<", 40, True),
        ("<=", 35, True),
        (">", 30, True),
        (">=", 36, False),
    ])
    def test_operators(self, operator, threshold, expected):
        assert compare("numeric", operator, threshold, 35) is expected

    def test_between_is_inclusive_at_both_ends(self):
        assert compare("numeric", "between", [18, 24], 18)
        assert compare("numeric", "between", [18, 24], 24)
        assert compare("numeric", "between", [18, 24], 21.5)
        assert not compare("numeric", "between", [18, 24], 24.01)

    def test_between_with_min_above_max_never_matches(self):
        assert not compare("numeric", "between", [24, 18], 20)
        assert not compare("numeric", "between", [24, 18], 24)

    def test_between_with_non_list_value_is_malformed(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("numeric", "between", 20, 20)
        assert compare("numeric", "between", 20, 20) is False

    def test_non_numeric_reading_is_not_satisfied(self):
        assert compare("numeric", ">", 30, "hot") is False
        assert compare("numeric", ">", 30, True) is False
        assert compare("numeric", ">", 30, {"value": 40}) is False

    def test_numeric_string_reading_is_accepted(self):
        assert compare("numeric", ">", 30, "35")

    def test_non_numeric_threshold_is_malformed(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("numeric", ">", "thirty", 35)

    def test_duration_uses_numeric_semantics(self):
        assert compare(SensorType.duration, "<", 7, 6.5)
        assert compare(SensorType.duration, "between", [7, 9], 9)


class TestEnum:
    def test_equality_uses_value_not_label(self):
        reading = {"value": "sunny", "label": "Sunny Skies"}
        assert compare("enum", "==", "sunny", reading)
        assert not compare("enum", "==", "Sunny Skies", reading)

    def test_other_value_does_not_match(self):
        assert not compare("enum", "==", "sunny", {"value": "cloudy"})
        assert compare("enum", "!=", "sunny", {"value": "cloudy"})

    def test_bare_string_reading(self):
        assert compare("enum", "==", "poor", "poor")

    def test_ordering_operators_are_not_supported(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("enum", ">", "poor", "good")


class TestBoolean:
    @pytest.mark.parametrize("value,reading", [
        (True, True),
        ("true", True),
        ("yes", "on"),
        (False, "false"),
        (0, False),
    ])
    def test_coerced_equality(self, value, reading):
        assert compare("boolean", "==", value, reading)

    def test_mismatch(self):
        assert not compare("boolean", "==", True, False)

    def test_only_equality_is_allowed(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("boolean", "!=", True, False)

    def test_uninterpretable_reading_is_not_satisfied(self):
        assert compare("boolean", "==", True, "maybe") is False


class TestText:
    def test_contains_is_case_insensitive_substring(self):
        assert compare("text", "contains", "rain", "Heavy RAIN expected tonight")
        assert not compare("text", "contains", "snow", "Heavy rain expected tonight")

    def test_contains_matches_any_item_of_a_list(self):
        headlines = ["Markets rally", "Storm warning for the coast"]
        assert compare("text", "contains", "storm", headlines)

    def test_equality_is_not_a_text_operator(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("text", "==", "Paris", "Paris")


class TestFailClosed:
    def test_missing_reading(self):
        for sensor_type in ("numeric", "enum", "boolean", "text"):
            assert compare(sensor_type, "==" if sensor_type != "text" else "contains", "x", None) is False

    def test_unknown_type(self):
        with pytest.raises(ComparisonError):
            evaluate_comparison("location", "==", "home", "home")
        assert compare("location", "==", "home", "home") is False

    def test_sensor_operator_list_narrows_type_operators(self):
        # fitness.steps style sensor: numeric without `between`
        allowed = ("<", "<=", ">", ">=", "==", "!=")
        assert compare("numeric", ">=", 10000, 12000, allowed)
        assert compare("numeric", "between", [0, 20000], 12000, allowed) is False
