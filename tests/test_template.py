from promptcraft.template import extract_variables, fill_template, stringify_value


class TestExtractVariables:
    def test_single_variable(self):
        assert extract_variables("Hello {{name}}") == ["name"]

    def test_multiple_variables(self):
        result = extract_variables("{{greeting}} {{name}}, welcome to {{place}}")
        assert result == ["greeting", "name", "place"]

    def test_no_variables(self):
        assert extract_variables("Hello world") == []

    def test_duplicate_variables(self):
        result = extract_variables("{{name}} and {{name}} again")
        assert result == ["name"]

    def test_spaces_in_braces(self):
        assert extract_variables("{{ name }}") == ["name"]
        assert extract_variables("{{  name  }}") == ["name"]

    def test_camel_case_variable(self):
        assert extract_variables("{{variableName}}") == ["variableName"]

    def test_preserves_order(self):
        result = extract_variables("{{b}} {{a}} {{c}} {{a}}")
        assert result == ["b", "a", "c"]


class TestFillTemplate:
    def test_simple_fill(self):
        assert fill_template("Hello {{name}}", {"name": "World"}) == "Hello World"

    def test_missing_variable_left_unchanged(self):
        assert fill_template("Hello {{name}}", {}) == "Hello {{name}}"

    def test_spaces_in_braces(self):
        assert fill_template("Hello {{ name }}", {"name": "World"}) == "Hello World"

    def test_every_occurrence_replaced(self):
        assert fill_template("{{x}}-{{ x }}-{{x}}", {"x": "1"}) == "1-1-1"

    def test_empty_value(self):
        assert fill_template("Hello {{name}}", {"name": ""}) == "Hello "

    def test_no_recursive_substitution(self):
        result = fill_template("{{a}} {{b}}", {"a": "{{b}}", "b": "B"})
        assert result == "{{b}} B"

    def test_single_braces_untouched(self):
        assert fill_template("{name} {{name}}", {"name": "x"}) == "{name} x"


class TestStringifyValue:
    def test_booleans_lowercase(self):
        assert stringify_value(True) == "true"
        assert stringify_value(False) == "false"

    def test_numbers(self):
        assert stringify_value(5) == "5"
        assert stringify_value(5.0) == "5"
        assert stringify_value(2.5) == "2.5"

    def test_arrays_joined_with_comma(self):
        assert stringify_value(["a", "b", "c"]) == "a,b,c"
        assert stringify_value(("x",)) == "x"

    def test_none_is_empty(self):
        assert stringify_value(None) == ""
