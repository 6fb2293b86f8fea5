import io

import pytest

import bc
import mathlib
from interpreter import Interpreter


@pytest.fixture
def stdin(monkeypatch):
    def feed(text):
        monkeypatch.setattr("sys.stdin", io.StringIO(text))

    return feed


def test_repl_evaluates_lines(stdin, capsys):
    stdin("1 + 2\nquit\n4\n")
    assert bc.run_cli([]) == 0
    assert capsys.readouterr().out == "3\n"


def test_repl_joins_incomplete_lines(stdin, capsys):
    stdin("define f(x) {\n  return (x * 2)\n}\nf(4)\n1 +\n2\n")
    assert bc.run_cli([]) == 0
    assert capsys.readouterr().out == "8\n3\n"


def test_files_run_before_stdin(tmp_path, stdin, capsys):
    script = tmp_path / "prog.bc"
    script.write_text("x = 3\nx\n")
    stdin("x + 1\n")
    assert bc.run_cli([str(script)]) == 0
    assert capsys.readouterr().out == "3\n4\n"


def test_quit_in_file_skips_stdin(tmp_path, stdin, capsys):
    script = tmp_path / "prog.bc"
    script.write_text("1\nquit\n")
    stdin("2\n")
    assert bc.run_cli([str(script)]) == 0
    assert capsys.readouterr().out == "1\n"


def test_unreadable_file(tmp_path, stdin, capsys):
    stdin("")
    assert bc.run_cli([str(tmp_path / "missing.bc")]) == 1
    assert "cannot read" in capsys.readouterr().err


def test_parse_error_is_reported_and_skipped(stdin, capsys):
    stdin("1 +* 2\n3\n")
    assert bc.run_cli([]) == 0
    captured = capsys.readouterr()
    assert captured.out == "3\n"
    assert captured.err.startswith("parse error: ")


def test_runtime_error_is_reported_and_skipped(stdin, capsys):
    stdin("2\n1/0\n5\n")
    assert bc.run_cli([]) == 0
    captured = capsys.readouterr()
    assert captured.out == "2\n5\n"
    assert "runtime error: <stdin>:1: divide by zero" in captured.err


def test_runtime_error_flushes_partial_output(stdin, capsys):
    stdin("7; 1/0; 8\n")
    bc.run_cli([])
    assert capsys.readouterr().out == "7\n"


def test_unfinished_input_reports_parse_error(stdin, capsys):
    stdin("if (1) {\n")
    assert bc.run_cli([]) == 0
    assert "parse error" in capsys.readouterr().err


def test_math_library_flag(stdin, capsys):
    stdin("scale\n")
    assert bc.run_cli(["-l"]) == 0
    assert capsys.readouterr().out == "20\n"


def test_expression_flag_skips_stdin(stdin, capsys):
    stdin("99\n")
    assert bc.run_cli(["-e", "2^8", "-e", "obase=16; 255"]) == 0
    assert capsys.readouterr().out == "256\nFF\n"


def test_read_consumes_following_stdin_lines(stdin, capsys):
    stdin("read() * 2\n21\n")
    assert bc.run_cli([]) == 0
    assert capsys.readouterr().out == "42\n"


def test_verbose_prints_traceback(stdin, capsys):
    stdin("define f() { return (1/0) }\nf()\n")
    assert bc.run_cli(["-v"]) == 0
    err = capsys.readouterr().err
    assert "Traceback (most recent call last):" in err
    assert "in f" in err


def test_line_length_from_environment(monkeypatch, stdin, capsys):
    monkeypatch.setenv("BC_LINE_LENGTH", "0")
    stdin("2^300\n")
    bc.run_cli([])
    assert capsys.readouterr().out == str(2 ** 300) + "\n"


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({}, 70),
        ({"BC_LINE_LENGTH": "40"}, 40),
        ({"BC_LINE_LENGTH": "0"}, 0),
        ({"BC_LINE_LENGTH": "wide"}, 70),
        ({"BC_LINE_LENGTH": "-3"}, 70),
    ],
)
def test_line_length_parsing(environ, expected):
    assert bc.line_length_from_env(environ) == expected


def test_bootstrap_failure_exits_with_two(monkeypatch, stdin, capsys):
    monkeypatch.setattr(mathlib, "MATH_LIBRARY", "define (")
    stdin("")
    assert bc.run_cli(["-l"]) == 2
    assert "bootstrap error" in capsys.readouterr().err


def test_deeply_nested_input_is_a_parse_error(stdin, capsys):
    depth = 50000
    stdin("(" * depth + "1" + ")" * depth + "\n2\n")
    assert bc.run_cli([]) == 0
    captured = capsys.readouterr()
    assert captured.out == "2\n"
    assert captured.err.startswith("parse error: ")
    assert "nested too deeply" in captured.err


class InterruptedLines:
    interactive = False

    def read(self, prompt=""):
        raise KeyboardInterrupt


def test_interrupt_while_reading_ends_the_session(capsys):
    assert bc.run_repl(Interpreter(), InterruptedLines(), False) == 0
    assert capsys.readouterr().out == ""
