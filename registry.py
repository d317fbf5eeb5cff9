from __future__ import annotations
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple


class ConoError(Exception):
    """Base class for cono errors."""


class ConfigError(ConoError):
    """Raised for an invalid encoding configuration."""


class RegistrationError(ConoError):
    """Raised when a lexeme or code cannot be registered."""


class RangeExhausted(RegistrationError):
    """Raised when a category has no free codes left."""


class TokenCategory(Enum):
    KEYWORD = "KEYWORD"
    OPERATOR = "OPERATOR"
    SYMBOL = "SYMBOL"
    LITERAL = "LITERAL"
    UNKNOWN = "UNKNOWN"


NULL_CODE = -1

# Digits with an optional fractional part. No sign, no exponent.
NUMERIC_PATTERN = re.compile(r"[0-9]+(\.[0-9]+)?")

CodeRange = Tuple[int, int]


@dataclass(frozen=True)
class EncodingConfig:
    keyword: CodeRange
    operator: CodeRange
    symbol: CodeRange
    literal: CodeRange

    def __post_init__(self) -> None:
        for name in ("keyword", "operator", "symbol", "literal"):
            start, end = getattr(self, name)
            if start > end:
                raise ConfigError(f"Bad {name} range: start {start} is greater than end {end}")


DEFAULT_CONFIG = EncodingConfig(
    keyword=(100, 199),
    operator=(200, 299),
    symbol=(300, 699),
    literal=(700, 999),
)

DEFAULT_KEYWORDS = (
    "int",
    "string",
    "body",
    "remove",
    "clear",
    "if",
    "while",
)

DEFAULT_OPERATORS = (
    "+",
    "-",
    "*",
    "/",
    "=",
    "==",
    "(",
    ")",
    ";",
    "[",
)


@dataclass(frozen=True)
class EncodedToken:
    lexeme: str
    category: TokenCategory
    code: int

    def __str__(self) -> str:
        return f"{self.lexeme} -> {self.category.value} #{self.code}"


NULL_TOKEN = EncodedToken("", TokenCategory.UNKNOWN, NULL_CODE)


def is_numeric(lexeme: str) -> bool:
    return NUMERIC_PATTERN.fullmatch(lexeme) is not None


@dataclass
class TokenRegistry:
    config: EncodingConfig
    _keywords: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _operators: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _symbols: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _literals: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _code_to_lexeme: Dict[int, str] = field(default_factory=dict, init=False, repr=False)
    _code_to_category: Dict[int, TokenCategory] = field(default_factory=dict, init=False, repr=False)
    next_symbol_code: int = field(init=False, default=0)
    next_literal_code: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.next_symbol_code = self.config.symbol[0]
        self.next_literal_code = self.config.literal[0]

    # Fixed ranges

    def register_keywords(self, *lexemes: str) -> None:
        self._register_fixed(self._keywords, lexemes, self.config.keyword, TokenCategory.KEYWORD)

    def register_operators(self, *lexemes: str) -> None:
        self._register_fixed(self._operators, lexemes, self.config.operator, TokenCategory.OPERATOR)

    def _register_fixed(
        self,
        table: Dict[str, int],
        lexemes: Iterable[str],
        code_range: CodeRange,
        category: TokenCategory,
    ) -> None:
        lexemes = list(lexemes)
        start, end = code_range
        code = start + len(table)
        seen = set()
        for lexeme in lexemes:
            if not lexeme:
                raise RegistrationError(f"Cannot register an empty {category.value.lower()}")
            if lexeme in self._keywords or lexeme in self._operators or lexeme in seen:
                raise RegistrationError(f"Lexeme '{lexeme}' is already registered")
            seen.add(lexeme)
        # Check the whole batch first so a failed call assigns nothing.
        if lexemes:
            self._check_range(code + len(lexemes) - 1, end, category)
        for offset, lexeme in enumerate(lexemes):
            self._check_free(code + offset, lexeme)
        for lexeme in lexemes:
            self._put(table, lexeme, code, category)
            code += 1

    # Encoding

    def encode(self, lexeme: Optional[str]) -> EncodedToken:
        if not lexeme:
            return NULL_TOKEN

        code = self._keywords.get(lexeme)
        if code is not None:
            return EncodedToken(lexeme, TokenCategory.KEYWORD, code)

        code = self._operators.get(lexeme)
        if code is not None:
            return EncodedToken(lexeme, TokenCategory.OPERATOR, code)

        if is_numeric(lexeme):
            code = self._literals.get(lexeme)
            if code is None:
                self._check_range(self.next_literal_code, self.config.literal[1], TokenCategory.LITERAL)
                code = self.next_literal_code
                self._put(self._literals, lexeme, code, TokenCategory.LITERAL)
                self.next_literal_code += 1
            return EncodedToken(lexeme, TokenCategory.LITERAL, code)

        code = self._symbols.get(lexeme)
        if code is None:
            self._check_range(self.next_symbol_code, self.config.symbol[1], TokenCategory.SYMBOL)
            code = self.next_symbol_code
            self._put(self._symbols, lexeme, code, TokenCategory.SYMBOL)
            self.next_symbol_code += 1
        return EncodedToken(lexeme, TokenCategory.SYMBOL, code)

    def decode(self, code: int) -> Optional[str]:
        return self._code_to_lexeme.get(code)

    def category_of(self, code: int) -> Optional[TokenCategory]:
        return self._code_to_category.get(code)

    def code_for(self, category: TokenCategory, lexeme: str) -> Optional[int]:
        table = self._tables().get(category)
        if table is None:
            return None
        return table.get(lexeme)

    # Read-only views, insertion ordered

    def keywords(self) -> Mapping[str, int]:
        return MappingProxyType(self._keywords)

    def operators(self) -> Mapping[str, int]:
        return MappingProxyType(self._operators)

    def symbols(self) -> Mapping[str, int]:
        return MappingProxyType(self._symbols)

    def literals(self) -> Mapping[str, int]:
        return MappingProxyType(self._literals)

    def _tables(self) -> Dict[TokenCategory, Dict[str, int]]:
        return {
            TokenCategory.KEYWORD: self._keywords,
            TokenCategory.OPERATOR: self._operators,
            TokenCategory.SYMBOL: self._symbols,
            TokenCategory.LITERAL: self._literals,
        }

    def _check_free(self, code: int, lexeme: str) -> None:
        if code in self._code_to_lexeme:
            owner = self._code_to_lexeme[code]
            raise RegistrationError(
                f"Code {code} for '{lexeme}' is already assigned to '{owner}' "
                f"({self._code_to_category[code].value})"
            )

    def _put(self, table: Dict[str, int], lexeme: str, code: int, category: TokenCategory) -> None:
        self._check_free(code, lexeme)
        table[lexeme] = code
        self._code_to_lexeme[code] = lexeme
        self._code_to_category[code] = category

    @staticmethod
    def _check_range(code: int, end: int, category: TokenCategory) -> None:
        if code > end:
            raise RangeExhausted(f"Out of {category.value.lower()} codes (limit {end})")


def build_default_registry(config: EncodingConfig = DEFAULT_CONFIG) -> TokenRegistry:
    registry = TokenRegistry(config)
    registry.register_keywords(*DEFAULT_KEYWORDS)
    registry.register_operators(*DEFAULT_OPERATORS)
    return registry
