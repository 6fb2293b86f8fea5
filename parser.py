from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Set, Union

from lexer import OPERATORS, BCParseError, Lexer, Token


@dataclass
class SourceLocation:
    file: Optional[str]
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


class Statement(Node):
    pass


class Expression(Node):
    pass


@dataclass
class Param:
    name: str
    is_array: bool


@dataclass
class FunctionDef(Node):
    name: str
    params: List[Param]
    autos: List[Param]
    body: "Block"


@dataclass
class Program(Node):
    items: List[Union[Statement, FunctionDef]]
    # Set when `quit` was read; the items before it still run.
    quit: bool = False


@dataclass
class Block(Statement):
    statements: List[Statement]


@dataclass
class ExpressionStatement(Statement):
    expression: Expression


@dataclass
class StringStatement(Statement):
    text: str


@dataclass
class StringLiteral(Node):
    text: str


@dataclass
class PrintStatement(Statement):
    items: List[Union[Expression, StringLiteral]]


@dataclass
class IfStatement(Statement):
    condition: Expression
    then_branch: Statement
    else_branch: Optional[Statement]


@dataclass
class WhileStatement(Statement):
    condition: Expression
    body: Statement


@dataclass
class ForStatement(Statement):
    init: Optional[Expression]
    condition: Optional[Expression]
    update: Optional[Expression]
    body: Statement


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ReturnStatement(Statement):
    expression: Optional[Expression]


@dataclass
class QuitStatement(Statement):
    keyword: str


@dataclass
class NumberLiteral(Expression):
    text: str


@dataclass
class Variable(Expression):
    name: str


@dataclass
class ArrayElement(Expression):
    name: str
    index: Expression


@dataclass
class SpecialVariable(Expression):
    name: str


@dataclass
class Assignment(Expression):
    target: Expression
    operator: str
    value: Expression


@dataclass
class BinaryOp(Expression):
    operator: str
    left: Expression
    right: Expression


@dataclass
class UnaryMinus(Expression):
    operand: Expression


@dataclass
class IncDec(Expression):
    target: Expression
    operator: str
    prefix: bool


@dataclass
class Comparison(Expression):
    operator: str
    left: Expression
    right: Expression


@dataclass
class LogicalOp(Expression):
    operator: str
    left: Expression
    right: Expression


@dataclass
class LogicalNot(Expression):
    operand: Expression


@dataclass
class ArrayArgument(Expression):
    name: str


@dataclass
class Call(Expression):
    name: str
    args: List[Expression]


@dataclass
class BuiltinCall(Expression):
    name: str
    argument: Expression


@dataclass
class ReadExpression(Expression):
    pass


NamedExpression = Union[Variable, ArrayElement, SpecialVariable]

EXPRESSION_START = {
    "NUMBER",
    "IDENT",
    "LPAREN",
    "MINUS",
    "INCR",
    "DECR",
    "SCALE",
    "IBASE",
    "OBASE",
    "LAST",
    "LENGTH",
    "SQRT",
    "READ",
}

SPECIAL_VARIABLES = {"SCALE": "scale", "IBASE": "ibase", "OBASE": "obase", "LAST": "last"}


class QuitReached(Exception):
    """Raised inside the parser when `quit` is read."""


class Parser:
    def __init__(self, tokens: List[Token], filename: Optional[str], source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0
        self._loop_depth = 0
        self._in_function = False
        # Relational and logical operators are only legal inside conditions.
        self._in_condition = False

    def parse(self) -> Program:
        items: List[Union[Statement, FunctionDef]] = []
        location = self._location_from_token(self.tokens[0])
        self._skip_separators()
        while self._peek().type != "EOF":
            try:
                if self._peek().type == "DEFINE":
                    item = self._parse_function()
                else:
                    item = self._parse_statement()
            except QuitReached:
                # The item holding `quit` is dropped along with the rest of the input.
                return Program(location=location, items=items, quit=True)
            items.append(item)
            self._expect_separator(closing=None)
            self._skip_separators()
        return Program(location=location, items=items)

    # ---- statements ----

    def _parse_statement(self) -> Statement:
        token = self._peek()
        kind = token.type
        if kind == "LBRACE":
            return self._parse_block()
        if kind == "IF":
            return self._parse_if()
        if kind == "WHILE":
            return self._parse_while()
        if kind == "FOR":
            return self._parse_for()
        if kind == "BREAK":
            self._consume("BREAK")
            if self._loop_depth == 0:
                self._error("break outside a loop", token)
            return BreakStatement(location=self._location_from_token(token))
        if kind == "CONTINUE":
            self._consume("CONTINUE")
            if self._loop_depth == 0:
                self._error("continue outside a loop", token)
            return ContinueStatement(location=self._location_from_token(token))
        if kind == "QUIT":
            raise QuitReached()
        if kind == "HALT":
            self.index += 1
            return QuitStatement(location=self._location_from_token(token), keyword=token.value)
        if kind == "RETURN":
            return self._parse_return()
        if kind == "STRING":
            self._consume("STRING")
            return StringStatement(location=self._location_from_token(token), text=token.value)
        if kind == "PRINT":
            return self._parse_print()
        if kind == "DEFINE":
            self._error("function definitions are only allowed at top level", token)
        if kind not in EXPRESSION_START:
            self._error("syntax error", token)
        expr = self._parse_expression()
        return ExpressionStatement(location=expr.location, expression=expr)

    def _parse_statement_list(self, closing: str) -> List[Statement]:
        statements: List[Statement] = []
        self._skip_separators()
        while self._peek().type != closing:
            if self._peek().type == "EOF":
                self._error(f"expected {closing}", self._peek())
            statements.append(self._parse_statement())
            self._expect_separator(closing=closing)
            self._skip_separators()
        return statements

    def _parse_block(self) -> Block:
        start = self._consume("LBRACE")
        statements = self._parse_statement_list("RBRACE")
        self._consume("RBRACE")
        return Block(location=self._location_from_token(start), statements=statements)

    def _parse_body(self) -> Statement:
        self._consume_newlines()
        token = self._peek()
        if token.type == "SEMICOLON":
            return Block(location=self._location_from_token(token), statements=[])
        return self._parse_statement()

    def _parse_loop_body(self) -> Statement:
        self._loop_depth += 1
        try:
            return self._parse_body()
        finally:
            self._loop_depth -= 1

    def _parse_if(self) -> IfStatement:
        keyword = self._consume("IF")
        condition = self._parse_parenthesized_condition()
        then_branch = self._parse_body()
        else_branch: Optional[Statement] = None
        saved = self.index
        while self._peek().type in ("NEWLINE", "SEMICOLON"):
            self.index += 1
        if self._match("ELSE"):
            else_branch = self._parse_body()
        else:
            self.index = saved
        return IfStatement(
            location=self._location_from_token(keyword),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _parse_while(self) -> WhileStatement:
        keyword = self._consume("WHILE")
        condition = self._parse_parenthesized_condition()
        body = self._parse_loop_body()
        return WhileStatement(location=self._location_from_token(keyword), condition=condition, body=body)

    def _parse_for(self) -> ForStatement:
        keyword = self._consume("FOR")
        self._consume("LPAREN")
        init = None if self._peek().type == "SEMICOLON" else self._parse_expression()
        self._consume("SEMICOLON")
        condition = None if self._peek().type == "SEMICOLON" else self._parse_condition()
        self._consume("SEMICOLON")
        update = None if self._peek().type == "RPAREN" else self._parse_expression()
        self._consume("RPAREN")
        body = self._parse_loop_body()
        return ForStatement(
            location=self._location_from_token(keyword),
            init=init,
            condition=condition,
            update=update,
            body=body,
        )

    def _parse_return(self) -> ReturnStatement:
        keyword = self._consume("RETURN")
        if not self._in_function:
            self._error("return outside a function", keyword)
        expression: Optional[Expression] = None
        if self._peek().type == "LPAREN" and self._peek_next().type == "RPAREN":
            self.index += 2
        elif self._peek().type in EXPRESSION_START:
            expression = self._parse_expression()
        return ReturnStatement(location=self._location_from_token(keyword), expression=expression)

    def _parse_print(self) -> PrintStatement:
        keyword = self._consume("PRINT")
        items: List[Union[Expression, StringLiteral]] = []
        while True:
            token = self._peek()
            if token.type == "STRING":
                self._consume("STRING")
                items.append(StringLiteral(location=self._location_from_token(token), text=token.value))
            else:
                items.append(self._parse_expression())
            if not self._match("COMMA"):
                break
        return PrintStatement(location=self._location_from_token(keyword), items=items)

    def _parse_function(self) -> FunctionDef:
        keyword = self._consume("DEFINE")
        name_token = self._consume("IDENT")
        self._consume("LPAREN")
        params = self._parse_define_list() if self._peek().type != "RPAREN" else []
        self._consume("RPAREN")
        self._consume_newlines()
        start = self._consume("LBRACE")
        self._skip_separators()
        autos: List[Param] = []
        while self._peek().type == "AUTO":
            self._consume("AUTO")
            autos.extend(self._parse_define_list())
            self._expect_separator(closing="RBRACE")
            self._skip_separators()

        seen: Set[tuple] = set()
        for param in params + autos:
            key = (param.name, param.is_array)
            if key in seen:
                self._error(f"duplicate parameter or auto name '{param.name}'", name_token)
            seen.add(key)

        saved = (self._in_function, self._loop_depth)
        self._in_function, self._loop_depth = True, 0
        try:
            statements = self._parse_statement_list("RBRACE")
        finally:
            self._in_function, self._loop_depth = saved
        self._consume("RBRACE")
        body = Block(location=self._location_from_token(start), statements=statements)
        return FunctionDef(
            location=self._location_from_token(keyword),
            name=name_token.value,
            params=params,
            autos=autos,
            body=body,
        )

    def _parse_define_list(self) -> List[Param]:
        params: List[Param] = []
        while True:
            ident = self._consume("IDENT")
            is_array = False
            if self._match("LBRACKET"):
                self._consume("RBRACKET")
                is_array = True
            params.append(Param(name=ident.value, is_array=is_array))
            if not self._match("COMMA"):
                break
        return params

    # ---- conditions ----

    def _parse_parenthesized_condition(self) -> Expression:
        self._consume("LPAREN")
        condition = self._parse_condition()
        self._consume("RPAREN")
        return condition

    def _parse_condition(self) -> Expression:
        saved = self._in_condition
        self._in_condition = True
        try:
            return self._parse_or()
        finally:
            self._in_condition = saved

    def _parse_or(self) -> Expression:
        left = self._parse_and()
        while self._peek().type == "OR":
            op = self._consume("OR")
            right = self._parse_and()
            left = LogicalOp(location=self._location_from_token(op), operator="||", left=left, right=right)
        return left

    def _parse_and(self) -> Expression:
        left = self._parse_not()
        while self._peek().type == "AND":
            op = self._consume("AND")
            right = self._parse_not()
            left = LogicalOp(location=self._location_from_token(op), operator="&&", left=left, right=right)
        return left

    def _parse_not(self) -> Expression:
        if self._peek().type == "NOT":
            op = self._consume("NOT")
            return LogicalNot(location=self._location_from_token(op), operand=self._parse_not())
        left = self._parse_expression()
        if self._peek().type == "RELOP":
            op = self._consume("RELOP")
            right = self._parse_expression()
            return Comparison(location=self._location_from_token(op), operator=op.value, left=left, right=right)
        return left

    # ---- expressions ----

    def _parse_expression(self) -> Expression:
        left = self._parse_term()
        while self._peek().type in ("PLUS", "MINUS"):
            op = self._peek()
            self.index += 1
            right = self._parse_term()
            left = BinaryOp(location=self._location_from_token(op), operator=op.value, left=left, right=right)
        return left

    def _parse_term(self) -> Expression:
        left = self._parse_power()
        while self._peek().type in ("STAR", "SLASH", "PERCENT"):
            op = self._peek()
            self.index += 1
            right = self._parse_power()
            left = BinaryOp(location=self._location_from_token(op), operator=op.value, left=left, right=right)
        return left

    def _parse_power(self) -> Expression:
        base = self._parse_unary()
        if self._peek().type == "CARET":
            op = self._consume("CARET")
            exponent = self._parse_power()
            return BinaryOp(location=self._location_from_token(op), operator="^", left=base, right=exponent)
        return base

    def _parse_unary(self) -> Expression:
        if self._peek().type == "MINUS":
            op = self._consume("MINUS")
            return UnaryMinus(location=self._location_from_token(op), operand=self._parse_unary())
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        token = self._peek()
        kind = token.type
        location = self._location_from_token(token)
        if kind == "NUMBER":
            self._consume("NUMBER")
            return NumberLiteral(location=location, text=token.value)
        if kind == "LPAREN":
            self._consume("LPAREN")
            expr = self._parse_or() if self._in_condition else self._parse_expression()
            self._consume("RPAREN")
            return expr
        if kind == "INCR" or kind == "DECR":
            self.index += 1
            target = self._parse_named_expression()
            return IncDec(location=location, target=target, operator=token.value, prefix=True)
        if kind == "IDENT" and self._peek_next().type == "LPAREN":
            return self._parse_call()
        if kind == "SCALE" and self._peek_next().type == "LPAREN":
            return self._parse_builtin()
        if kind == "LENGTH" or kind == "SQRT":
            return self._parse_builtin()
        if kind == "READ":
            self._consume("READ")
            self._consume("LPAREN")
            self._consume("RPAREN")
            return ReadExpression(location=location)
        if kind == "IDENT" or kind in SPECIAL_VARIABLES:
            target = self._parse_named_expression()
            return self._parse_named_suffix(target)
        self._error("syntax error", token)

    def _parse_named_expression(self) -> Expression:
        token = self._peek()
        location = self._location_from_token(token)
        if token.type in SPECIAL_VARIABLES:
            self.index += 1
            return SpecialVariable(location=location, name=SPECIAL_VARIABLES[token.type])
        ident = self._consume("IDENT")
        if self._match("LBRACKET"):
            index = self._parse_nested_expression()
            self._consume("RBRACKET")
            return ArrayElement(location=location, name=ident.value, index=index)
        return Variable(location=location, name=ident.value)

    def _parse_named_suffix(self, target: Expression) -> Expression:
        token = self._peek()
        if token.type == "ASSIGN":
            self._consume("ASSIGN")
            value = self._parse_expression()
            return Assignment(location=self._location_from_token(token), target=target, operator=token.value, value=value)
        if token.type == "INCR" or token.type == "DECR":
            self.index += 1
            return IncDec(location=self._location_from_token(token), target=target, operator=token.value, prefix=False)
        return target

    def _parse_call(self) -> Call:
        ident = self._consume("IDENT")
        self._consume("LPAREN")
        args: List[Expression] = []
        if self._peek().type != "RPAREN":
            while True:
                token = self._peek()
                if (
                    token.type == "IDENT"
                    and self._peek_next().type == "LBRACKET"
                    and self._peek_at(2).type == "RBRACKET"
                ):
                    self.index += 3
                    args.append(ArrayArgument(location=self._location_from_token(token), name=token.value))
                else:
                    args.append(self._parse_nested_expression())
                if not self._match("COMMA"):
                    break
        self._consume("RPAREN")
        return Call(location=self._location_from_token(ident), name=ident.value, args=args)

    def _parse_builtin(self) -> BuiltinCall:
        keyword = self._peek()
        self.index += 1
        self._consume("LPAREN")
        argument = self._parse_nested_expression()
        self._consume("RPAREN")
        return BuiltinCall(location=self._location_from_token(keyword), name=keyword.value, argument=argument)

    def _parse_nested_expression(self) -> Expression:
        # Arguments and subscripts are plain expressions even inside a condition.
        saved = self._in_condition
        self._in_condition = False
        try:
            return self._parse_expression()
        finally:
            self._in_condition = saved

    # ---- token helpers ----

    def _expect_separator(self, closing: Optional[str]) -> None:
        kind = self._peek().type
        if kind in ("NEWLINE", "SEMICOLON", "EOF") or kind == closing:
            return
        self._error("syntax error", self._peek())

    def _skip_separators(self) -> None:
        while self._peek().type in ("NEWLINE", "SEMICOLON"):
            self.index += 1

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            self._error(f"expected {token_type} but found {token.type}", token)
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _consume_newlines(self) -> None:
        while self._match("NEWLINE"):
            continue

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        return self._peek_at(1)

    def _peek_at(self, offset: int) -> Token:
        position = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[position]

    def _error(self, message: str, token: Token) -> None:
        if token.type == "EOF":
            text = "end of input"
        elif token.type == "NEWLINE":
            text = "newline"
        else:
            text = token.value
        raise BCParseError(message, filename=self.filename, line=token.line, column=token.column, token=text)

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_program(source: str, filename: Optional[str] = None) -> Program:
    """Parse a complete input unit; raise BCParseError without partial results."""
    tokens = Lexer(source, filename).tokenize()
    parser = Parser(tokens, filename, source.splitlines())
    try:
        return parser.parse()
    except RecursionError:
        token = parser._peek()
        raise BCParseError(
            "expression nested too deeply",
            filename=filename,
            line=token.line,
            column=token.column,
        ) from None


DANGLING_TOKENS = {symbol for symbol, kind in OPERATORS if kind not in ("INCR", "DECR")} | {","}
HEADER_KEYWORDS = {"if", "while", "for", "define"}


def is_incomplete(buffer: str) -> bool:
    """Report whether the REPL should read another line before parsing.

    One pass over the characters, tracking open brackets, strings and comments
    plus the last significant token. Anything this misses becomes an ordinary
    syntax error once the buffer is parsed.
    """
    parens = brackets = braces = 0
    last = ""
    header_pending = False
    header_depth: Optional[int] = None
    header_closed = False
    i = 0
    n = len(buffer)
    while i < n:
        ch = buffer[i]
        if ch in " \t\r\n\f":
            i += 1
            continue
        if ch == "\\":
            if i + 1 >= n or (buffer[i + 1] == "\n" and i + 2 >= n):
                return True
            i += 2
            continue
        if ch == "#":
            end = buffer.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch == "/" and buffer.startswith("/*", i):
            end = buffer.find("*/", i + 2)
            if end == -1:
                return True
            i = end + 2
            continue

        header_closed = False
        if ch == '"':
            end = buffer.find('"', i + 1)
            if end == -1:
                return True
            i = end + 1
            last = '"'
            continue
        if "a" <= ch <= "z":
            start = i
            while i < n and ("a" <= buffer[i] <= "z" or "0" <= buffer[i] <= "9" or buffer[i] == "_"):
                i += 1
            last = buffer[start:i]
            if last in HEADER_KEYWORDS:
                header_pending = True
            continue
        if ch in "0123456789ABCDEF.":
            while i < n and buffer[i] in "0123456789ABCDEF.":
                i += 1
            last = "0"
            continue
        if ch == "(":
            parens += 1
            if header_pending and header_depth is None:
                header_depth = parens
                header_pending = False
        elif ch == ")":
            if header_depth == parens:
                header_closed = True
                header_depth = None
            parens -= 1
        elif ch == "[":
            brackets += 1
        elif ch == "]":
            brackets -= 1
        elif ch == "{":
            braces += 1
        elif ch == "}":
            braces -= 1
        else:
            for symbol, _kind in OPERATORS:
                if buffer.startswith(symbol, i):
                    last = symbol
                    i += len(symbol)
                    break
            else:
                last = ch
                i += 1
            continue
        last = ch
        i += 1

    if parens > 0 or brackets > 0 or braces > 0:
        return True
    return header_closed or last == "else" or last in DANGLING_TOKENS
