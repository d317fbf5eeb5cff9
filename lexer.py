from __future__ import annotations
from typing import List, Sequence

from registry import ConoError


class LexError(ConoError):
    """Raised when a source line cannot be split into lexemes."""


PUNCTUATION = set("(){}[],;:+-*/%<>=!")

DIGRAPHS = {"==", "!=", "<=", ">="}

COMMENT = "//"


class Lexer:
    """Splits one source line into lexeme strings.

    Punctuation is always its own lexeme, so ``x=1+2;`` and ``x = 1 + 2 ;``
    split the same way. A double-quoted run is kept whole, quotes included,
    and ``//`` outside quotes ends the line.
    """

    def __init__(self, text: str, filename: str = "<string>", line: int = 1) -> None:
        self.text = text
        self.filename = filename
        self.line = line
        self.index = 0
        self.column = 1

    def split(self) -> List[str]:
        lexemes: List[str] = []
        append = lexemes.append
        text = self.text
        n = len(text)

        while self.index < n:
            ch = text[self.index]
            if ch.isspace():
                self._advance()
                continue
            if text.startswith(COMMENT, self.index):
                break
            if ch == '"':
                append(self._consume_string())
                continue
            if ch in PUNCTUATION:
                pair = text[self.index:self.index + 2]
                if pair in DIGRAPHS:
                    append(pair)
                    self._advance()
                    self._advance()
                    continue
                append(ch)
                self._advance()
                continue
            append(self._consume_word())
        return lexemes

    def _consume_string(self) -> str:
        col = self.column
        start = self.index
        self._advance()  # opening quote
        while not self._eof:
            if self._peek() == '"':
                self._advance()
                return self.text[start:self.index]
            self._advance()
        raise LexError(f"Unterminated string literal at {self.filename}:{self.line}:{col}")

    def _consume_word(self) -> str:
        text = self.text
        start = self.index
        while not self._eof:
            ch = self._peek()
            if ch.isspace() or ch in PUNCTUATION or ch == '"':
                break
            self._advance()
        return text[start:self.index]

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _advance(self) -> None:
        self.index += 1
        self.column += 1


def split_line(line: str, filename: str = "<string>", line_number: int = 1) -> List[str]:
    return Lexer(line, filename, line_number).split()


def format_lexemes(lexemes: Sequence[str]) -> str:
    if not lexemes:
        return "EOL"
    return ", ".join(lexemes) + ", EOL"
