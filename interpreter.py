from __future__ import annotations
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from lexer import BCError
from number import NumberError, Number, wrap_output, KIND_BAD_NUMBER
from parser import (
    ArrayArgument,
    ArrayElement,
    Assignment,
    BinaryOp,
    Block,
    BreakStatement,
    BuiltinCall,
    Call,
    Comparison,
    ContinueStatement,
    Expression,
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
    Program,
    QuitStatement,
    ReadExpression,
    ReturnStatement,
    SourceLocation,
    SpecialVariable,
    Statement,
    StringLiteral,
    StringStatement,
    UnaryMinus,
    Variable,
    WhileStatement,
)
import mathlib


logger = logging.getLogger("bc.interpreter")
logger.addHandler(logging.NullHandler())

BC_BASE_MAX = 999
BC_DIM_MAX = 65536
BC_SCALE_MAX = 2147483647
MAX_CALL_DEPTH = 1000
DEFAULT_LINE_LENGTH = 70

# Each bc call costs roughly a dozen Python frames.
RECURSION_LIMIT = 10000

KIND_BAD_BASE = "bad_base"
KIND_BAD_SCALE = "bad_scale"
KIND_UNDEFINED_FUNCTION = "undefined_function"
KIND_ARITY = "arity"
KIND_ARGUMENT_TYPE = "argument_type"
KIND_ARRAY_INDEX = "array_index"
KIND_STACK_DEPTH = "stack_depth"
KIND_READ_EXHAUSTED = "read_exhausted"
KIND_INTERNAL = "internal"

ZERO = Number(0, 0)
ONE = Number(1, 0)

PRINT_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "\\": "\\",
    '"': '"',
    "q": '"',
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "r": "\r",
    "e": "\\",
}

InputProvider = Callable[[], Optional[str]]


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    variables: Optional[Dict[str, str]]


class BCRuntimeError(BCError):
    """Raised for runtime faults.

    `output` holds whatever the failing unit printed before the fault and
    `frames` the activation stack at the point of failure.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str = KIND_INTERNAL,
        location: Optional[SourceLocation] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.location = location
        self.output = ""
        self.frames: Optional[List[TracebackFrame]] = None


class ReturnSignal(Exception):
    def __init__(self, value: Number) -> None:
        super().__init__(value)
        self.value = value


class BreakSignal(Exception):
    pass


class ContinueSignal(Exception):
    pass


class QuitSignal(Exception):
    def __init__(self, keyword: str) -> None:
        super().__init__(keyword)
        self.keyword = keyword


@dataclass
class ArrayValue:
    """Sparse array; unset elements read as zero. Shared when passed by reference."""

    elements: Dict[int, Number] = field(default_factory=dict)

    def get(self, index: int) -> Number:
        return self.elements.get(index, ZERO)

    def set(self, index: int, value: Number) -> None:
        self.elements[index] = value


@dataclass
class Function:
    name: str
    params: List[Param]
    autos: List[Param]
    body: Block
    location: SourceLocation


@dataclass
class Frame:
    name: str
    call_location: Optional[SourceLocation]
    scalars: Dict[str, Number] = field(default_factory=dict)
    arrays: Dict[str, ArrayValue] = field(default_factory=dict)
    location: Optional[SourceLocation] = None


class Interpreter:
    def __init__(
        self,
        *,
        math_library: bool = False,
        input_provider: Optional[InputProvider] = None,
        line_length: int = DEFAULT_LINE_LENGTH,
        verbose: bool = False,
    ) -> None:
        self.input_provider = input_provider
        self.line_length = line_length
        self.verbose = verbose
        self.functions: Dict[str, Function] = {}
        self.global_frame = Frame(name="<top-level>", call_location=None)
        self.call_stack: List[Frame] = [self.global_frame]
        self.scale = 0
        self.ibase = 10
        self.obase = 10
        self.last = ZERO
        self.formatter = TracebackFormatter(self)
        self._output: List[str] = []
        self._column = 0
        self._quit = False
        self._pending_input: Deque[str] = deque()

        if sys.getrecursionlimit() < RECURSION_LIMIT:
            sys.setrecursionlimit(RECURSION_LIMIT)

        if math_library:
            mathlib.load_math_library(self)

    def has_quit(self) -> bool:
        return self._quit

    def exec(self, program: Program) -> str:
        """Run one parsed unit and return the text it printed."""
        if self._quit:
            return ""
        if program.quit:
            # Items read before `quit` still run; later input is ignored.
            logger.debug("quit read; ignoring further input")
            self._quit = True
        try:
            for item in program.items:
                if isinstance(item, FunctionDef):
                    self._define_function(item)
                else:
                    self._execute_statement(item)
        except QuitSignal as signal:
            logger.debug("%s executed; ignoring further input", signal.keyword)
            self._quit = True
        except BCRuntimeError as error:
            self._fail(error)
        except RecursionError:
            self._fail(
                BCRuntimeError(
                    "recursion too deep",
                    kind=KIND_STACK_DEPTH,
                    location=self.call_stack[-1].location,
                )
            )
        except (ReturnSignal, BreakSignal, ContinueSignal) as exc:
            self._fail(
                BCRuntimeError(
                    f"{exc.__class__.__name__} escaped its construct",
                    location=self.call_stack[-1].location,
                )
            )
        return self._drain()

    def _fail(self, error: BCRuntimeError) -> None:
        if error.frames is None:
            error.frames = self.formatter.build_frames()
        error.output = self._drain()
        self.call_stack = [self.global_frame]
        raise error

    def _drain(self) -> str:
        text = "".join(self._output)
        self._output.clear()
        return text

    def _emit(self, text: str, *, wrap: bool) -> None:
        width = self.line_length if wrap else 0
        text, self._column = wrap_output(text, self._column, width)
        self._output.append(text)

    def _define_function(self, definition: FunctionDef) -> None:
        if definition.name in self.functions:
            logger.debug("redefining function %s", definition.name)
        else:
            logger.debug("defining function %s", definition.name)
        self.functions[definition.name] = Function(
            name=definition.name,
            params=definition.params,
            autos=definition.autos,
            body=definition.body,
            location=definition.location,
        )

    # ---- statements ----

    def _execute_block(self, statements: List[Statement]) -> None:
        execute_stmt = self._execute_statement
        for statement in statements:
            execute_stmt(statement)

    def _execute_statement(self, statement: Statement) -> None:
        self.call_stack[-1].location = statement.location
        if isinstance(statement, ExpressionStatement):
            expr = statement.expression
            value = self._evaluate_expression(expr)
            if isinstance(expr, Assignment):
                return
            self.last = value
            self._emit(value.to_string(self.obase) + "\n", wrap=True)
            return
        if isinstance(statement, Block):
            self._execute_block(statement.statements)
            return
        if isinstance(statement, IfStatement):
            if self._is_true(statement.condition):
                self._execute_statement(statement.then_branch)
            elif statement.else_branch is not None:
                self._execute_statement(statement.else_branch)
            return
        if isinstance(statement, WhileStatement):
            self._execute_while(statement)
            return
        if isinstance(statement, ForStatement):
            self._execute_for(statement)
            return
        if isinstance(statement, StringStatement):
            self._emit(statement.text, wrap=False)
            return
        if isinstance(statement, PrintStatement):
            self._execute_print(statement)
            return
        if isinstance(statement, ReturnStatement):
            value = ZERO if statement.expression is None else self._evaluate_expression(statement.expression)
            raise ReturnSignal(value)
        if isinstance(statement, BreakStatement):
            raise BreakSignal()
        if isinstance(statement, ContinueStatement):
            raise ContinueSignal()
        if isinstance(statement, QuitStatement):
            raise QuitSignal(statement.keyword)
        raise BCRuntimeError("unsupported statement", location=statement.location)

    def _execute_while(self, statement: WhileStatement) -> None:
        while self._is_true(statement.condition):
            try:
                self._execute_statement(statement.body)
            except BreakSignal:
                break
            except ContinueSignal:
                continue

    def _execute_for(self, statement: ForStatement) -> None:
        eval_expr = self._evaluate_expression
        if statement.init is not None:
            eval_expr(statement.init)
        while statement.condition is None or self._is_true(statement.condition):
            try:
                self._execute_statement(statement.body)
            except BreakSignal:
                break
            except ContinueSignal:
                pass
            if statement.update is not None:
                eval_expr(statement.update)

    def _execute_print(self, statement: PrintStatement) -> None:
        for item in statement.items:
            if isinstance(item, StringLiteral):
                self._emit(expand_escapes(item.text), wrap=False)
            else:
                value = self._evaluate_expression(item)
                self._emit(value.to_string(self.obase), wrap=True)

    def _is_true(self, condition: Expression) -> bool:
        return not self._evaluate_expression(condition).is_zero()

    # ---- expressions ----

    def _evaluate_expression(self, expression: Expression) -> Number:
        if isinstance(expression, NumberLiteral):
            return self._literal(expression)
        if isinstance(expression, Variable):
            return self._scalar_frame(expression.name).scalars.get(expression.name, ZERO)
        if isinstance(expression, ArrayElement):
            array = self._lookup_array(expression.name)
            return array.get(self._index(expression))
        if isinstance(expression, SpecialVariable):
            return self._get_special(expression.name)
        if isinstance(expression, BinaryOp):
            left = self._evaluate_expression(expression.left)
            right = self._evaluate_expression(expression.right)
            return self._arith(expression.operator, left, right, expression.location)
        if isinstance(expression, UnaryMinus):
            return -self._evaluate_expression(expression.operand)
        if isinstance(expression, Assignment):
            return self._assign(expression)
        if isinstance(expression, IncDec):
            getter, setter = self._locate(expression.target)
            current = getter()
            updated = current.add(ONE) if expression.operator == "++" else current.sub(ONE)
            setter(updated)
            return getter() if expression.prefix else current
        if isinstance(expression, Comparison):
            left = self._evaluate_expression(expression.left)
            right = self._evaluate_expression(expression.right)
            return ONE if _compare(expression.operator, left.compare(right)) else ZERO
        if isinstance(expression, LogicalOp):
            left_true = self._is_true(expression.left)
            if expression.operator == "&&":
                result = left_true and self._is_true(expression.right)
            else:
                result = left_true or self._is_true(expression.right)
            return ONE if result else ZERO
        if isinstance(expression, LogicalNot):
            return ONE if self._evaluate_expression(expression.operand).is_zero() else ZERO
        if isinstance(expression, Call):
            return self._call_user_function(expression)
        if isinstance(expression, BuiltinCall):
            value = self._evaluate_expression(expression.argument)
            if expression.name == "length":
                return Number.from_int(value.length())
            if expression.name == "scale":
                return Number.from_int(value.scale)
            try:
                return value.sqrt(self.scale)
            except NumberError as exc:
                raise BCRuntimeError(exc.message, kind=exc.kind, location=expression.location) from exc
        if isinstance(expression, ReadExpression):
            return self._read(expression.location)
        if isinstance(expression, ArrayArgument):
            raise BCRuntimeError(
                f"array {expression.name}[] used as a value",
                kind=KIND_ARGUMENT_TYPE,
                location=expression.location,
            )
        raise BCRuntimeError("unsupported expression", location=expression.location)

    def _literal(self, literal: NumberLiteral) -> Number:
        try:
            return Number.parse(literal.text, self.ibase)
        except NumberError as exc:
            raise BCRuntimeError(exc.message, kind=exc.kind, location=literal.location) from exc

    def _arith(self, operator: str, left: Number, right: Number, location: SourceLocation) -> Number:
        try:
            if operator == "+":
                return left.add(right)
            if operator == "-":
                return left.sub(right)
            if operator == "*":
                return left.mul(right, self.scale)
            if operator == "/":
                return left.div(right, self.scale)
            if operator == "%":
                return left.mod(right, self.scale)
            if operator == "^":
                return left.pow(right, self.scale)
        except NumberError as exc:
            raise BCRuntimeError(exc.message, kind=exc.kind, location=location) from exc
        raise BCRuntimeError(f"unknown operator '{operator}'", location=location)

    def _assign(self, expression: Assignment) -> Number:
        getter, setter = self._locate(expression.target)
        if expression.operator == "=":
            value = self._evaluate_expression(expression.value)
        else:
            current = getter()
            rhs = self._evaluate_expression(expression.value)
            value = self._arith(expression.operator[:-1], current, rhs, expression.location)
        setter(value)
        return getter()

    def _locate(self, target: Expression) -> Tuple[Callable[[], Number], Callable[[Number], None]]:
        """Resolve an assignable expression once into a getter/setter pair."""
        if isinstance(target, Variable):
            name = target.name
            scalars = self._scalar_frame(name).scalars
            return (lambda: scalars.get(name, ZERO)), (lambda value: scalars.__setitem__(name, value))
        if isinstance(target, ArrayElement):
            array = self._lookup_array(target.name)
            index = self._index(target)
            return (lambda: array.get(index)), (lambda value: array.set(index, value))
        if isinstance(target, SpecialVariable):
            name = target.name
            location = target.location
            return (lambda: self._get_special(name)), (lambda value: self._set_special(name, value, location))
        raise BCRuntimeError("invalid assignment target", location=target.location)

    def _get_special(self, name: str) -> Number:
        if name == "last":
            return self.last
        return Number.from_int(getattr(self, name))

    def _set_special(self, name: str, value: Number, location: SourceLocation) -> None:
        if name == "last":
            self.last = value
            return
        number = value.to_int()
        if name == "scale":
            if not 0 <= number <= BC_SCALE_MAX:
                raise BCRuntimeError(
                    f"scale must be between 0 and {BC_SCALE_MAX}",
                    kind=KIND_BAD_SCALE,
                    location=location,
                )
        elif name == "ibase":
            if not 2 <= number <= 16:
                raise BCRuntimeError("ibase must be between 2 and 16", kind=KIND_BAD_BASE, location=location)
        elif not 2 <= number <= BC_BASE_MAX:
            raise BCRuntimeError(
                f"obase must be between 2 and {BC_BASE_MAX}",
                kind=KIND_BAD_BASE,
                location=location,
            )
        logger.debug("%s set to %d", name, number)
        setattr(self, name, number)

    def _index(self, element: ArrayElement) -> int:
        index = self._evaluate_expression(element.index).to_int()
        if not 0 <= index < BC_DIM_MAX:
            raise BCRuntimeError(
                f"array index {index} out of range for {element.name}[]",
                kind=KIND_ARRAY_INDEX,
                location=element.location,
            )
        return index

    # ---- scoping ----

    def _scalar_frame(self, name: str) -> Frame:
        for frame in reversed(self.call_stack):
            if name in frame.scalars:
                return frame
        return self.global_frame

    def _lookup_array(self, name: str) -> ArrayValue:
        for frame in reversed(self.call_stack):
            array = frame.arrays.get(name)
            if array is not None:
                return array
        array = ArrayValue()
        self.global_frame.arrays[name] = array
        return array

    def _call_user_function(self, call: Call) -> Number:
        function = self.functions.get(call.name)
        if function is None:
            raise BCRuntimeError(
                f"function {call.name}() is not defined",
                kind=KIND_UNDEFINED_FUNCTION,
                location=call.location,
            )
        if len(call.args) != len(function.params):
            raise BCRuntimeError(
                f"function {function.name}() expects {len(function.params)} arguments but received {len(call.args)}",
                kind=KIND_ARITY,
                location=call.location,
            )
        if len(self.call_stack) > MAX_CALL_DEPTH:
            raise BCRuntimeError(
                f"call depth exceeds {MAX_CALL_DEPTH}",
                kind=KIND_STACK_DEPTH,
                location=call.location,
            )

        frame = Frame(name=function.name, call_location=call.location)
        for param, arg in zip(function.params, call.args):
            if param.is_array:
                if not isinstance(arg, ArrayArgument):
                    raise BCRuntimeError(
                        f"parameter {param.name}[] of {function.name}() expects an array",
                        kind=KIND_ARGUMENT_TYPE,
                        location=call.location,
                    )
                frame.arrays[param.name] = self._lookup_array(arg.name)
                continue
            if isinstance(arg, ArrayArgument):
                raise BCRuntimeError(
                    f"parameter {param.name} of {function.name}() expects a number",
                    kind=KIND_ARGUMENT_TYPE,
                    location=call.location,
                )
            frame.scalars[param.name] = self._evaluate_expression(arg)
        for auto in function.autos:
            if auto.is_array:
                frame.arrays[auto.name] = ArrayValue()
            else:
                frame.scalars[auto.name] = ZERO

        self.call_stack.append(frame)
        try:
            self._execute_block(function.body.statements)
        except ReturnSignal as signal:
            return signal.value
        except BCRuntimeError as error:
            if error.frames is None:
                error.frames = self.formatter.build_frames()
            raise
        finally:
            self.call_stack.pop()
        return ZERO

    # ---- input ----

    def _read(self, location: SourceLocation) -> Number:
        while not self._pending_input:
            line = self._next_input_line()
            if line is None:
                raise BCRuntimeError("read(): no more input", kind=KIND_READ_EXHAUSTED, location=location)
            self._pending_input.extend(line.split())
        token = self._pending_input.popleft()
        try:
            return Number.parse(token, self.ibase)
        except NumberError as exc:
            raise BCRuntimeError(f"read(): {exc.message}", kind=KIND_BAD_NUMBER, location=location) from exc

    def _next_input_line(self) -> Optional[str]:
        if self.input_provider is None:
            return None
        try:
            return self.input_provider()
        except EOFError:
            return None


def _compare(operator: str, order: int) -> bool:
    if operator == "==":
        return order == 0
    if operator == "!=":
        return order != 0
    if operator == "<":
        return order < 0
    if operator == "<=":
        return order <= 0
    if operator == ">":
        return order > 0
    return order >= 0


def expand_escapes(text: str) -> str:
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and i + 1 < n:
            nxt = text[i + 1]
            out.append(PRINT_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            location = frame.location or frame.call_location
            variables: Optional[Dict[str, str]] = None
            if self.interpreter.verbose and frame is not self.interpreter.global_frame:
                variables = {name: str(value) for name, value in frame.scalars.items()}
                variables.update({f"{name}[]": f"<{len(array.elements)} set>" for name, array in frame.arrays.items()})
            frames.append(
                TracebackFrame(
                    name=frame.name,
                    location=location,
                    statement=location.statement if location else None,
                    variables=variables,
                )
            )
        return frames

    def format_text(self, error: BCRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in error.frames or []:
            if frame.location:
                file = frame.location.file or "<stdin>"
                lines.append(f"  File \"{file}\", line {frame.location.line}, in {frame.name}")
                if frame.statement:
                    lines.append(f"    {frame.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if verbose and frame.variables:
                snapshot = ", ".join(f"{k}={v}" for k, v in frame.variables.items())
                lines.append(f"    Locals: {snapshot}")
        lines.append(f"{error.__class__.__name__}: {error.message} ({error.kind})")
        return "\n".join(lines)
