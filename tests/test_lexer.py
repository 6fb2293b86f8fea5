import pytest

from lexer import BCParseError, Lexer


def token_types(source):
    return [token.type for token in Lexer(source).tokenize()]


def test_basic_expression():
    assert token_types("a = 1.5 + b2_x") == ["IDENT", "ASSIGN", "NUMBER", "PLUS", "IDENT", "EOF"]


def test_compound_assignment_and_relations():
    tokens = Lexer("x += 1; a<=b").tokenize()
    assert (tokens[1].type, tokens[1].value) == ("ASSIGN", "+=")
    assert (tokens[5].type, tokens[5].value) == ("RELOP", "<=")


def test_keywords_are_recognised():
    assert token_types("define while quit") == ["DEFINE", "WHILE", "QUIT", "EOF"]


def test_comments_are_skipped():
    assert token_types("/* c\n d */ 1 # x\n") == ["NUMBER", "NEWLINE", "EOF"]


def test_string_may_span_lines():
    tokens = Lexer('"a\nb" x').tokenize()
    assert tokens[0].type == "STRING"
    assert tokens[0].value == "a\nb"
    assert tokens[1].line == 2


def test_backslash_newline_is_whitespace():
    assert token_types("a \\\n b") == ["IDENT", "IDENT", "EOF"]
    number = Lexer("1\\\n2").tokenize()[0]
    assert number.value == "12"


def test_uppercase_digits_form_numbers():
    tokens = Lexer("ABC .5").tokenize()
    assert [(t.type, t.value) for t in tokens[:2]] == [("NUMBER", "ABC"), ("NUMBER", ".5")]


def test_lone_point_means_last():
    assert token_types(".\n") == ["LAST", "NEWLINE", "EOF"]


def test_increment_is_longest_match():
    assert token_types("a++ - --b") == ["IDENT", "INCR", "MINUS", "DECR", "IDENT", "EOF"]


def test_line_and_column_tracking():
    tokens = Lexer("a\n  bb").tokenize()
    assert (tokens[2].line, tokens[2].column) == (2, 3)


def test_unterminated_string():
    with pytest.raises(BCParseError) as info:
        Lexer('"abc').tokenize()
    assert "unterminated string" in str(info.value)


def test_unterminated_comment():
    with pytest.raises(BCParseError):
        Lexer("/* abc").tokenize()


def test_illegal_character():
    with pytest.raises(BCParseError) as info:
        Lexer("1 @ 2", "calc.bc").tokenize()
    assert str(info.value) == "calc.bc:1:3: illegal character near '@'"


def test_error_without_filename_uses_stdin():
    error = BCParseError("syntax error", line=2, column=1, token="}")
    assert str(error) == "<stdin>:2:1: syntax error near '}'"
