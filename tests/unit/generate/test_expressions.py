"""Unit tests for tool implementation parsing and translation."""

import pytest

from plugforge.generate.expressions import (
    ArrayExpr,
    GoTranslator,
    Literal,
    ObjectExpr,
    ParamRef,
    PythonTranslator,
    UnsupportedExpressionError,
    node_from_value,
    parse_implementation,
    translate_implementation,
)


class TestParseImplementation:
    """Tests for the implementation parser."""

    def test_object_with_parameter(self):
        node = parse_implementation("return { message: input }", ["input"])
        assert node == ObjectExpr((("message", ParamRef("input")),))

    def test_literals_and_arrays(self):
        node = parse_implementation(
            'return { ok: true, count: 3, ratio: 0.5, none: null, tags: ["a", \'b\'] };', []
        )
        assert node == ObjectExpr(
            (
                ("ok", Literal(True)),
                ("count", Literal(3)),
                ("ratio", Literal(0.5)),
                ("none", Literal(None)),
                ("tags", ArrayExpr((Literal("a"), Literal("b")))),
            )
        )

    def test_without_return_keyword(self):
        assert parse_implementation('"hi"', []) == Literal("hi")

    def test_empty_snippet(self):
        assert parse_implementation("   ", []) == Literal(None)

    def test_trailing_commas_and_quoted_keys(self):
        node = parse_implementation('return { "task-id": "t", list: [1, 2,], }', [])
        assert node == ObjectExpr(
            (("task-id", Literal("t")), ("list", ArrayExpr((Literal(1), Literal(2))))),
        )

    def test_string_escapes(self):
        node = parse_implementation(r'return "line\n\"quoted\" é"', [])
        assert node == Literal('line\n"quoted" é')

    def test_unknown_identifier(self):
        with pytest.raises(UnsupportedExpressionError, match="Unknown identifier 'secret'"):
            parse_implementation("return { value: secret }", ["input"])

    def test_function_call_is_unsupported(self):
        with pytest.raises(UnsupportedExpressionError):
            parse_implementation("return fetch(input)", ["input"])

    def test_multiple_statements_are_unsupported(self):
        with pytest.raises(UnsupportedExpressionError, match="single returned literal"):
            parse_implementation("return 1; return 2", [])

    def test_duplicate_key(self):
        with pytest.raises(UnsupportedExpressionError, match="Duplicate object key"):
            parse_implementation("return { a: 1, a: 2 }", [])

    def test_unterminated_object(self):
        with pytest.raises(UnsupportedExpressionError):
            parse_implementation("return { a: 1", [])


class TestNodeFromValue:
    def test_nested_value(self):
        node = node_from_value({"a": [1, "x"], "b": None})
        assert node == ObjectExpr(
            (("a", ArrayExpr((Literal(1), Literal("x")))), ("b", Literal(None)))
        )

    def test_unsupported_value(self):
        with pytest.raises(UnsupportedExpressionError):
            node_from_value({1, 2})


class TestGoTranslator:
    """Tests for Go literal output."""

    def test_object(self):
        result = translate_implementation(
            'return { message: input, ok: true, items: [1, null] }', ["input"], GoTranslator()
        )
        assert result == (
            'map[string]interface{}{"message": args["input"], "ok": true, '
            + '"items": []interface{}{1, nil}}'
        )

    def test_string_escaping(self):
        assert GoTranslator().literal('say "hi"\n') == '"say \\"hi\\"\\n"'


class TestPythonTranslator:
    """Tests for Python literal output."""

    def test_object(self):
        result = translate_implementation(
            'return { message: input, ok: false, none: undefined }', ["input"], PythonTranslator()
        )
        assert result == "{'message': args.get('input'), 'ok': False, 'none': None}"

    def test_output_evaluates(self):
        source = translate_implementation(
            'return { insights: ["Insight 1", "Insight 2"], n: 2 }', [], PythonTranslator()
        )
        assert eval(source, {"args": {}}) == {"insights": ["Insight 1", "Insight 2"], "n": 2}


class TestNonFiniteNumbers:
    """Overflowing or NaN numbers have no Go or Python literal."""

    @pytest.mark.parametrize("translator", [GoTranslator(), PythonTranslator()])
    def test_overflowing_snippet(self, translator):
        with pytest.raises(UnsupportedExpressionError, match="Non-finite"):
            translate_implementation("return { x: 1e400 }", [], translator)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_default(self, value):
        with pytest.raises(UnsupportedExpressionError, match="Non-finite"):
            GoTranslator().translate(node_from_value({"limit": value}))

    def test_large_finite_number(self):
        assert translate_implementation("return 1e300", [], GoTranslator()) == "1e+300"
