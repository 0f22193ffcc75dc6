"""Unit tests for the restricted expression language.

Tests cover:
- Operators and precedence
- JavaScript-style equality, truthiness and null handling
- Whitelisted methods and the Math namespace
- Rejected constructs
- Static dependency inference
"""

import pytest

from dynaform.expressions import (
    WHOLE_FORM,
    ExpressionError,
    ExpressionEvaluator,
    collect_dependencies,
    is_truthy,
    loose_equal,
    to_number,
    tokenize,
)


def evaluate(source, form_value=None, **scope):
    return ExpressionEvaluator({"formValue": form_value or {}, **scope}).evaluate(source)


class TestOperators:
    """Test arithmetic, comparison and logical operators."""

    def test_precedence(self):
        """Should bind * tighter than +."""
        assert evaluate("1 + 2 * 3") == 7
        assert evaluate("(1 + 2) * 3") == 9

    def test_division_returns_int_when_exact(self):
        """Should keep integral results as ints."""
        assert evaluate("9 / 3") == 3
        assert evaluate("7 / 2") == 3.5

    def test_division_by_zero(self):
        """Should raise ExpressionError instead of ZeroDivisionError."""
        with pytest.raises(ExpressionError):
            evaluate("1 / 0")

    def test_string_concatenation(self):
        """Should concatenate when either side is a string."""
        assert evaluate("formValue.first + ' ' + formValue.last", {"first": "Ada", "last": "Lovelace"}) == "Ada Lovelace"
        assert evaluate("'n' + 1") == "n1"

    def test_none_concatenates_as_empty(self):
        """Should render missing values as the empty string."""
        assert evaluate("formValue.first + ' ' + formValue.last", {"first": "Ada"}) == "Ada "

    def test_numeric_strings_in_arithmetic(self):
        """Should coerce numeric strings for arithmetic."""
        assert evaluate("formValue.qty * formValue.price", {"qty": "3", "price": 2.5}) == 7.5

    def test_logical_operators_return_operands(self):
        """Should return the deciding operand like JavaScript."""
        assert evaluate("formValue.a || 'fallback'", {"a": ""}) == "fallback"
        assert evaluate("formValue.a && formValue.b", {"a": 1, "b": "x"}) == "x"
        assert evaluate("!formValue.a", {"a": 0}) is True

    def test_ternary(self):
        """Should evaluate only the selected branch."""
        assert evaluate("formValue.age >= 18 ? 'adult' : 'minor'", {"age": 20}) == "adult"
        assert evaluate("true ? 1 : 1 / 0") == 1

    def test_nullish_coalescing_and_optional_chaining(self):
        """Should tolerate missing intermediate values."""
        assert evaluate("formValue.address?.city ?? 'unknown'", {}) == "unknown"
        assert evaluate("formValue.address?.city", {"address": {"city": "Delft"}}) == "Delft"

    def test_strict_equality(self):
        """Should not equate numbers with strings or booleans."""
        assert evaluate("formValue.a === 1", {"a": 1}) is True
        assert evaluate("formValue.a === '1'", {"a": 1}) is False
        assert evaluate("formValue.a !== null", {"a": 0}) is True
        assert evaluate("formValue.missing == undefined", {}) is True

    def test_string_comparison(self):
        """Should compare two strings lexicographically."""
        assert evaluate("'2024-01-01' < '2024-06-01'") is True

    def test_array_literal_and_index(self):
        """Should build lists and index them."""
        assert evaluate("[1, 2, 3][1]") == 2
        assert evaluate("formValue.items[0].name", {"items": [{"name": "a"}]}) == "a"


class TestMethods:
    """Test whitelisted methods and the Math namespace."""

    def test_string_methods(self):
        """Should support common string methods."""
        assert evaluate("formValue.name.toUpperCase()", {"name": "ada"}) == "ADA"
        assert evaluate("formValue.email.includes('@')", {"email": "a@b.c"}) is True
        assert evaluate("formValue.code.padStart(4, '0')", {"code": "7"}) == "0007"
        assert evaluate("'  x '.trim()") == "x"

    def test_length(self):
        """Should expose length for strings, lists and dicts."""
        assert evaluate("formValue.name.length", {"name": "Ada"}) == 3
        assert evaluate("formValue.tags.length > 1", {"tags": ["a", "b"]}) is True

    def test_list_methods(self):
        """Should support includes and join on lists."""
        assert evaluate("formValue.tags.includes('b')", {"tags": ["a", "b"]}) is True
        assert evaluate("formValue.tags.join('-')", {"tags": ["a", "b"]}) == "a-b"

    def test_number_to_fixed(self):
        """Should format numbers with toFixed."""
        assert evaluate("formValue.total.toFixed(2)", {"total": 3}) == "3.00"

    def test_math(self):
        """Should expose a small Math namespace."""
        assert evaluate("Math.max(1, formValue.a, 3)", {"a": 7}) == 7
        assert evaluate("Math.round(2.5)") == 3
        assert evaluate("Math.floor(2.9)") == 2

    def test_custom_function_in_scope(self):
        """Should call functions placed in the scope."""
        assert evaluate("double(formValue.a)", {"a": 4}, double=lambda x: x * 2) == 8


class TestRejected:
    """Test constructs the evaluator refuses."""

    def test_dunder_access(self):
        """Should refuse double-underscore attribute access."""
        with pytest.raises(ExpressionError):
            evaluate("formValue.__class__")

    def test_unknown_method(self):
        """Should refuse methods outside the whitelist."""
        with pytest.raises(ExpressionError):
            evaluate("formValue.name.format()", {"name": "x"})

    def test_unknown_identifier(self):
        """Should refuse names that are not in the scope."""
        with pytest.raises(ExpressionError):
            evaluate("__import__('os')")

    def test_syntax_errors(self):
        """Should report syntax errors as ExpressionError."""
        for source in ("1 +", "(1", "formValue.", "'open", ""):
            with pytest.raises(ExpressionError):
                evaluate(source)

    def test_unknown_character(self):
        """Should reject characters outside the grammar."""
        with pytest.raises(ExpressionError):
            tokenize("a # b")

    def test_error_carries_expression(self):
        """Should record the failing source on the error."""
        with pytest.raises(ExpressionError) as info:
            evaluate("formValue.a / 0", {"a": 1})
        assert info.value.expression == "formValue.a / 0"


class TestValueHelpers:
    """Test truthiness, equality and number coercion."""

    def test_truthiness(self):
        """Should follow JavaScript truthiness."""
        assert is_truthy([]) is True
        assert is_truthy({}) is True
        assert is_truthy("") is False
        assert is_truthy(0) is False
        assert is_truthy(None) is False

    def test_loose_equal(self):
        """Should only equate None with None and keep booleans apart."""
        assert loose_equal(None, None)
        assert not loose_equal(None, 0)
        assert not loose_equal(True, 1)
        assert loose_equal(2, 2.0)

    def test_to_number(self):
        """Should coerce blanks to 0 and reject non-numeric text."""
        assert to_number("") == 0
        assert to_number(" 4 ") == 4
        assert to_number("1.5") == 1.5
        with pytest.raises(ExpressionError):
            to_number("abc")


class TestDependencies:
    """Test static dependency inference."""

    def test_member_paths(self):
        """Should report each formValue path read."""
        assert collect_dependencies("formValue.first + ' ' + formValue.last") == {"first", "last"}

    def test_nested_paths_and_length(self):
        """Should keep nested segments and drop a trailing length."""
        assert collect_dependencies("formValue.address.city.length > 0") == {"address.city"}

    def test_dynamic_index_narrows_to_collection(self):
        """Should depend on the collection when indexed dynamically."""
        assert collect_dependencies("formValue.items[formValue.pick].name") == {"items", "pick"}

    def test_bare_root(self):
        """Should report the whole form for a bare formValue."""
        assert collect_dependencies("fn(formValue)") == {WHOLE_FORM}

    def test_other_roots(self):
        """Should ignore names other than the requested root."""
        assert collect_dependencies("fieldValue.length > 2") == set()
        assert collect_dependencies("rootFormValue.country", root="rootFormValue") == {"country"}
