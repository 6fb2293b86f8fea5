from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class BCError(Exception):
    """Base class for interpreter errors."""


class BCParseError(BCError):
    """Raised when lexing or parsing fails."""

    def __init__(
        self,
        message: str,
        *,
        filename: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        self.token = token
        super().__init__(self._render())

    def _render(self) -> str:
        where = self.filename or "<stdin>"
        if self.line is not None:
            where += f":{self.line}"
            if self.column is not None:
                where += f":{self.column}"
        text = f"{where}: {self.message}"
        if self.token is not None:
            text += f" near {self.token!r}"
        return text


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


KEYWORDS = {
    "auto": "AUTO",
    "break": "BREAK",
    "continue": "CONTINUE",
    "define": "DEFINE",
    "else": "ELSE",
    "for": "FOR",
    "halt": "HALT",
    "if": "IF",
    "ibase": "IBASE",
    "last": "LAST",
    "length": "LENGTH",
    "obase": "OBASE",
    "print": "PRINT",
    "quit": "QUIT",
    "read": "READ",
    "return": "RETURN",
    "scale": "SCALE",
    "sqrt": "SQRT",
    "while": "WHILE",
}

SYMBOLS = {
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    ";": "SEMICOLON",
}

# Longest match first.
OPERATORS = [
    ("++", "INCR"),
    ("--", "DECR"),
    ("+=", "ASSIGN"),
    ("-=", "ASSIGN"),
    ("*=", "ASSIGN"),
    ("/=", "ASSIGN"),
    ("%=", "ASSIGN"),
    ("^=", "ASSIGN"),
    ("==", "RELOP"),
    ("!=", "RELOP"),
    ("<=", "RELOP"),
    (">=", "RELOP"),
    ("&&", "AND"),
    ("||", "OR"),
    ("<", "RELOP"),
    (">", "RELOP"),
    ("=", "ASSIGN"),
    ("!", "NOT"),
    ("+", "PLUS"),
    ("-", "MINUS"),
    ("*", "STAR"),
    ("/", "SLASH"),
    ("%", "PERCENT"),
    ("^", "CARET"),
]

NUMBER_DIGITS = "0123456789ABCDEF"


class Lexer:
    def __init__(self, text: str, filename: Optional[str] = None) -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch == " " or ch == "\t" or ch == "\r" or ch == "\f":
                _advance()
                continue
            if ch == "\\":
                self._consume_line_continuation()
                continue
            if ch == "\n":
                tokens_append(Token("NEWLINE", "\n", self.line, self.column))
                _advance()
                continue
            if ch == "#":
                self._consume_line_comment()
                continue
            if ch == "/" and self._peek_at(1) == "*":
                self._consume_block_comment()
                continue
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch == '"':
                tokens_append(self._consume_string())
                continue
            if ch == ".":
                if self._peek_at(1) and self._peek_at(1) in NUMBER_DIGITS:
                    tokens_append(self._consume_number())
                else:
                    # A lone point is shorthand for `last`.
                    tokens_append(Token("LAST", ".", self.line, self.column))
                    _advance()
                continue
            if ch in NUMBER_DIGITS:
                tokens_append(self._consume_number())
                continue
            if "a" <= ch <= "z":
                tokens_append(self._consume_identifier())
                continue
            operator = self._match_operator()
            if operator is not None:
                tokens_append(operator)
                continue
            raise BCParseError(
                "illegal character",
                filename=self.filename,
                line=self.line,
                column=self.column,
                token=ch,
            )
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _match_operator(self) -> Optional[Token]:
        text = self.text
        for symbol, token_type in OPERATORS:
            if text.startswith(symbol, self.index):
                token = Token(token_type, symbol, self.line, self.column)
                for _ in symbol:
                    self._advance()
                return token
        return None

    def _consume_line_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_block_comment(self) -> None:
        line, col = self.line, self.column
        end = self.text.find("*/", self.index + 2)
        if end == -1:
            raise BCParseError("unterminated comment", filename=self.filename, line=line, column=col)
        while self.index < end + 2:
            self._advance()

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        seen_point = False
        text = self.text
        n = len(text)
        while self.index < n:
            ch = text[self.index]
            if ch in NUMBER_DIGITS:
                chars.append(ch)
                self._advance()
                continue
            if ch == "." and not seen_point:
                seen_point = True
                chars.append(ch)
                self._advance()
                continue
            if ch == "\\" and self._peek_at(1) == "\n":
                # Long literals may be split with backslash-newline.
                self._consume_line_continuation()
                continue
            break
        return Token("NUMBER", "".join(chars), line, col)

    def _consume_string(self) -> Token:
        line, col = self.line, self.column
        self._advance()  # consume opening quote
        end = self.text.find('"', self.index)
        if end == -1:
            raise BCParseError("unterminated string", filename=self.filename, line=line, column=col)
        value = self.text[self.index:end]
        while self.index <= end:
            self._advance()
        return Token("STRING", value, line, col)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n:
            ch = text[self.index]
            if "a" <= ch <= "z" or "0" <= ch <= "9" or ch == "_":
                chars.append(ch)
                _advance()
                continue
            break
        value = "".join(chars)
        return Token(KEYWORDS.get(value, "IDENT"), value, line, col)

    def _consume_line_continuation(self) -> None:
        nxt = self._peek_at(1)
        if nxt == "\n":
            self._advance()
            self._advance()
            return
        if nxt == "\r" and self._peek_at(2) == "\n":
            self._advance()
            self._advance()
            self._advance()
            return
        raise BCParseError(
            "stray backslash",
            filename=self.filename,
            line=self.line,
            column=self.column,
            token="\\",
        )

    def _peek_at(self, offset: int) -> str:
        # Empty string past the end of input.
        position = self.index + offset
        if position < len(self.text):
            return self.text[position]
        return ""

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
