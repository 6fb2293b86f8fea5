import pytest

from lexer import BCParseError
from parser import (
    ArrayArgument,
    ArrayElement,
    Assignment,
    BinaryOp,
    Block,
    BreakStatement,
    BuiltinCall,
    Call,
    ExpressionStatement,
    ForStatement,
    FunctionDef,
    IfStatement,
    IncDec,
    LogicalNot,
    LogicalOp,
    NumberLiteral,
    Param,
    PrintStatement,
    ReturnStatement,
    SpecialVariable,
    StringLiteral,
    UnaryMinus,
    Variable,
    WhileStatement,
    parse_program,
)


def first_expression(source):
    statement = parse_program(source).items[0]
    assert isinstance(statement, ExpressionStatement)
    return statement.expression


def test_multiplication_binds_tighter_than_addition():
    expr = first_expression("1 + 2 * 3")
    assert isinstance(expr, BinaryOp) and expr.operator == "+"
    assert isinstance(expr.right, BinaryOp) and expr.right.operator == "*"


def test_unary_minus_binds_tighter_than_power():
    expr = first_expression("-2^2")
    assert expr.operator == "^"
    assert isinstance(expr.left, UnaryMinus)


def test_power_is_right_associative():
    expr = first_expression("2^3^2")
    assert isinstance(expr.left, NumberLiteral)
    assert isinstance(expr.right, BinaryOp) and expr.right.operator == "^"


def test_assignment_is_right_associative():
    expr = first_expression("a = b = 3")
    assert isinstance(expr, Assignment)
    assert isinstance(expr.target, Variable) and expr.target.name == "a"
    assert isinstance(expr.value, Assignment)


def test_compound_assignment_to_array_element():
    expr = first_expression("a[i+1] += 2")
    assert expr.operator == "+="
    assert isinstance(expr.target, ArrayElement)
    assert isinstance(expr.target.index, BinaryOp)


def test_increments():
    post = first_expression("x++")
    pre = first_expression("--x")
    assert isinstance(post, IncDec) and not post.prefix and post.operator == "++"
    assert isinstance(pre, IncDec) and pre.prefix and pre.operator == "--"


def test_special_variables_and_builtins():
    assert isinstance(first_expression("scale = 3").target, SpecialVariable)
    builtin = first_expression("scale(1.25)")
    assert isinstance(builtin, BuiltinCall) and builtin.name == "scale"
    last = first_expression(".")
    assert isinstance(last, SpecialVariable) and last.name == "last"


def test_function_definition():
    program = parse_program("define f(a, b[]) {\n  auto c, d[]\n  return (a)\n}\n")
    definition = program.items[0]
    assert isinstance(definition, FunctionDef)
    assert definition.params == [Param("a", False), Param("b", True)]
    assert definition.autos == [Param("c", False), Param("d", True)]
    assert isinstance(definition.body.statements[0], ReturnStatement)


def test_brace_may_follow_newline_after_define():
    program = parse_program("define f()\n{\n  return\n}\n")
    body = program.items[0].body
    assert body.statements[0].expression is None


def test_return_forms():
    program = parse_program("define f() { return (); return 5; return (1) + 2 }")
    returns = program.items[0].body.statements
    assert returns[0].expression is None
    assert isinstance(returns[1].expression, NumberLiteral)
    assert isinstance(returns[2].expression, BinaryOp)


def test_call_with_array_argument():
    call = first_expression("f(a[], 2)")
    assert isinstance(call, Call)
    assert isinstance(call.args[0], ArrayArgument) and call.args[0].name == "a"
    assert isinstance(call.args[1], NumberLiteral)


def test_if_else_across_lines():
    statement = parse_program("if (x)\n  y\nelse\n  z\n").items[0]
    assert isinstance(statement, IfStatement)
    assert isinstance(statement.else_branch, ExpressionStatement)


def test_condition_operators():
    statement = parse_program("if (a < b && !(c == d)) x = 1 else x = 2").items[0]
    condition = statement.condition
    assert isinstance(condition, LogicalOp) and condition.operator == "&&"
    assert isinstance(condition.right, LogicalNot)


def test_loops():
    program = parse_program("while (i < 3) i++\nfor (;;) break\nfor (i = 0; i < 2; i++) ;")
    assert isinstance(program.items[0], WhileStatement)
    empty_for = program.items[1]
    assert isinstance(empty_for, ForStatement)
    assert empty_for.init is None and empty_for.condition is None and empty_for.update is None
    assert isinstance(empty_for.body, BreakStatement)
    assert isinstance(program.items[2].body, Block)


def test_print_list():
    statement = parse_program('print "x=", 5').items[0]
    assert isinstance(statement, PrintStatement)
    assert isinstance(statement.items[0], StringLiteral)
    assert isinstance(statement.items[1], NumberLiteral)


def test_statements_separated_by_semicolons_and_newlines():
    assert len(parse_program("1; 2\n3\n\n;").items) == 3


@pytest.mark.parametrize(
    "source",
    [
        "break",
        "continue",
        "return 1",
        "a < b",
        "1 +",
        "1 2",
        "f(x) = 3",
        "(a < b)",
        "define f() { define g() { } }",
        "define f() { auto a, a }",
        "if (x) {",
    ],
)
def test_syntax_errors(source):
    with pytest.raises(BCParseError):
        parse_program(source)


def test_syntax_error_location():
    with pytest.raises(BCParseError) as info:
        parse_program("x = 1\ny = )", "t.bc")
    error = info.value
    assert (error.filename, error.line, error.column, error.token) == ("t.bc", 2, 5, ")")


def test_break_inside_function_loop_only():
    with pytest.raises(BCParseError):
        parse_program("while (1) { define f() { break } }")
    parse_program("define f() { while (1) break }")


def test_quit_ends_the_program_where_it_is_read():
    program = parse_program("1\nif (0) quit\n2")
    assert len(program.items) == 1
    assert program.quit is True
    assert parse_program("1\n2").quit is False


def test_quit_inside_function_body_ends_the_program():
    program = parse_program("x = 1; define f() { quit }\nf()")
    assert len(program.items) == 1
    assert program.quit is True


def test_excessive_nesting_is_a_parse_error():
    depth = 50000
    with pytest.raises(BCParseError) as info:
        parse_program("(" * depth + "1" + ")" * depth)
    assert "nested too deeply" in info.value.message
