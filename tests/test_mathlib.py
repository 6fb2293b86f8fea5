import pytest

import mathlib
from interpreter import Interpreter
from mathlib import BCBootstrapError
from parser import parse_program


@pytest.fixture(scope="module")
def calculator():
    return Interpreter(math_library=True)


def evaluate(interpreter, source):
    return interpreter.exec(parse_program(source)).strip()


def test_library_sets_scale(calculator):
    assert evaluate(calculator, "scale") == "20"
    assert sorted(calculator.functions) == ["a", "c", "e", "j", "l", "s"]


def test_exp_of_one(calculator):
    assert evaluate(calculator, "e(1)").startswith("2.718281828459045235")


def test_sqrt_uses_library_scale(calculator):
    assert evaluate(calculator, "sqrt(2)") == "1.41421356237309504880"


def test_sine_of_zero(calculator):
    assert evaluate(calculator, "s(0)") == "0"


@pytest.mark.parametrize(
    "source, expected",
    [
        ("e(-1)", 0.36787944117144233),
        ("l(2)", 0.6931471805599453),
        ("l(e(1))", 1.0),
        ("s(1)", 0.8414709848078965),
        ("c(1)", 0.5403023058681398),
        ("c(0)", 1.0),
        ("a(1) * 4", 3.141592653589793),
        ("a(.5)", 0.4636476090008061),
        ("a(-1)", -0.7853981633974483),
        ("j(0, 1)", 0.7651976865579666),
        ("j(1, 1)", 0.44005058574493355),
    ],
)
def test_library_functions(calculator, source, expected):
    assert float(evaluate(calculator, source)) == pytest.approx(expected, abs=1e-15)


def test_library_is_per_instance():
    assert evaluate(Interpreter(), "scale") == "0"


@pytest.mark.parametrize("source", ["define e(x) {", "1 / 0\n"])
def test_bootstrap_failure(monkeypatch, source):
    monkeypatch.setattr(mathlib, "MATH_LIBRARY", source)
    with pytest.raises(BCBootstrapError):
        Interpreter(math_library=True)
