import pytest

from parser import is_incomplete


def test_open_brace_then_close():
    buffer = "if (x > 0) {\n"
    assert is_incomplete(buffer)
    assert not is_incomplete(buffer + "}\n")


@pytest.mark.parametrize(
    "buffer",
    [
        "1 +\n",
        "x = (1 +\n",
        "a[1\n",
        "f(1,\n",
        "print 1,\n",
        "x =\n",
        "a && \n",
        '"abc\n',
        "/* comment\n",
        "1 \\\n",
        "define f(x)\n",
        "define f(x) {\n",
        "while (i < 10)\n",
        "for (i = 0; i < 3; i++)\n",
        "if (f(x))\n",
        "if (a) b\nelse\n",
    ],
)
def test_incomplete_buffers(buffer):
    assert is_incomplete(buffer)


@pytest.mark.parametrize(
    "buffer",
    [
        "",
        "\n",
        "1 + 2\n",
        "quit\n",
        "x++\n",
        '"done"\n',
        "# comment only\n",
        "/* closed */ 1\n",
        "define f(x) { return (x) }\n",
        "while (i < 10) i++\n",
        "if (f(x)) 1\n",
    ],
)
def test_complete_buffers(buffer):
    assert not is_incomplete(buffer)
