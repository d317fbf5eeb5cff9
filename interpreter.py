from __future__ import annotations
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from registry import ConoError, EncodedToken, TokenCategory, TokenRegistry


TYPE_INT = "INT"
TYPE_STR = "STRING"

INT_MIN = int(np.iinfo(np.int32).min)
INT_MAX = int(np.iinfo(np.int32).max)

# Only '+' carries an explicit weight; every other operator falls back to
# the same value, so evaluation groups strictly left to right.
PLUS_PRECEDENCE = 10
FALLBACK_PRECEDENCE = 10


def wrap_int(value: int) -> int:
    """Reduce ``value`` to a 32-bit two's complement integer."""
    return int(np.array(value & 0xFFFFFFFF, dtype=np.uint32).astype(np.int32))


@dataclass(frozen=True)
class Value:
    type: str
    value: Any

    @classmethod
    def of_int(cls, value: int) -> "Value":
        return cls(TYPE_INT, wrap_int(value))

    @classmethod
    def of_str(cls, value: str) -> "Value":
        return cls(TYPE_STR, value)

    def text(self) -> str:
        return str(self.value)

    def __str__(self) -> str:
        if self.type == TYPE_INT:
            return str(self.value)
        return f'"{self.value}"'


def zero_value(type_name: str) -> Value:
    if type_name == TYPE_INT:
        return Value.of_int(0)
    return Value.of_str("")


class StatementError(ConoError):
    """Raised for faults that abort the current statement."""

    def __init__(
        self,
        message: str,
        *,
        lexeme: Optional[str] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.lexeme = lexeme
        self.rule = rule


class StatementSyntaxError(StatementError):
    """Raised when a token is not legal in the current recognizer state."""


class UndeclaredIdentifier(StatementError):
    pass


class Redeclaration(StatementError):
    pass


class TypeMismatch(StatementError):
    pass


class MismatchedParenthesis(StatementError):
    pass


class EmptyExpression(StatementError):
    pass


class NotANumber(StatementError):
    pass


class DivisionByZero(StatementError):
    pass


@dataclass
class SymbolTable:
    values: Dict[str, Value] = field(default_factory=dict)

    def declare(self, name: str, value: Value) -> None:
        if name in self.values:
            raise Redeclaration(f"Redeclare: {name}", lexeme=name, rule="DECL")
        self.values[name] = value

    def assign(self, name: str, value: Value) -> None:
        existing = self.get_optional(name)
        if existing is None:
            raise UndeclaredIdentifier(f"Undeclared identifier: {name}", lexeme=name, rule="ASSIGN")
        if existing.type != value.type:
            raise TypeMismatch(
                f"Type mismatch in assignment to {name}: expected {existing.type} but got {value.type}",
                lexeme=name,
                rule="ASSIGN",
            )
        self.values[name] = value

    def get(self, name: str) -> Value:
        value = self.get_optional(name)
        if value is None:
            raise UndeclaredIdentifier(f"Undeclared identifier: {name}", lexeme=name, rule="IDENT")
        return value

    def get_optional(self, name: str) -> Optional[Value]:
        return self.values.get(name)

    def view(self) -> Mapping[str, Value]:
        return MappingProxyType(self.values)

    def snapshot(self) -> Dict[str, str]:
        return {name: f"{val.type}:{val}" for name, val in self.values.items()}

    def dump(self) -> str:
        return "Symbols: " + ", ".join(f"{name}={val}" for name, val in self.values.items())

    def __len__(self) -> int:
        return len(self.values)

    def __contains__(self, name: object) -> bool:
        return name in self.values


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    rewrite_record: Dict[str, Any]


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_state_index = 0
        self.last_state_id = "seed"

    def record(
        self,
        *,
        statement: Optional[str],
        rewrite_record: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        rewrite = {} if rewrite_record is None else rewrite_record
        if "from_state_id" not in rewrite:
            rewrite["from_state_id"] = self.last_state_id
        step_index = self.next_state_index
        state_id = f"s_{step_index:06d}"
        rewrite["to_state_id"] = state_id
        entry = StateEntry(
            step_index=step_index,
            state_id=state_id,
            statement=statement,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite,
        )
        self.entries.append(entry)
        self.last_state_id = state_id
        self.next_state_index += 1
        return entry

    def to_records(self) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for entry in self.entries:
            record: Dict[str, Any] = {
                "step_index": entry.step_index,
                "state_id": entry.state_id,
                "statement": entry.statement,
                "rewrite_record": entry.rewrite_record,
            }
            if entry.env_snapshot is not None:
                record["env_snapshot"] = entry.env_snapshot
            records.append(record)
        return records


class State(Enum):
    S0 = "S0"
    DECL_TYPE = "DECL_TYPE"
    DECL_NAME = "DECL_NAME"
    ASSIGN_LHS = "ASSIGN_LHS"
    AFTER_EQ = "AFTER_EQ"


class Column(Enum):
    KW_INT = "KW_INT"
    KW_STRING = "KW_STRING"
    SYMBOL = "SYMBOL"
    LITERAL = "LITERAL"
    EQ = "EQ"
    PLUS = "PLUS"
    MINUS = "MINUS"
    MULT = "MULT"
    DIV = "DIV"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    SEMI = "SEMI"
    OTHER = "OTHER"


# Lexemes the recognizer depends on, resolved against the registry once.
SPECIAL_LEXEMES: Tuple[Tuple[TokenCategory, str, Column], ...] = (
    (TokenCategory.KEYWORD, "int", Column.KW_INT),
    (TokenCategory.KEYWORD, "string", Column.KW_STRING),
    (TokenCategory.OPERATOR, "=", Column.EQ),
    (TokenCategory.OPERATOR, "+", Column.PLUS),
    (TokenCategory.OPERATOR, "-", Column.MINUS),
    (TokenCategory.OPERATOR, "*", Column.MULT),
    (TokenCategory.OPERATOR, "/", Column.DIV),
    (TokenCategory.OPERATOR, "(", Column.LPAREN),
    (TokenCategory.OPERATOR, ")", Column.RPAREN),
    (TokenCategory.OPERATOR, ";", Column.SEMI),
)

BINARY_COLUMNS = (Column.PLUS, Column.MINUS, Column.MULT, Column.DIV)

DECLARED_TYPES = {
    Column.KW_INT: TYPE_INT,
    Column.KW_STRING: TYPE_STR,
}


def is_quoted(lexeme: str) -> bool:
    return len(lexeme) >= 2 and lexeme.startswith('"') and lexeme.endswith('"')


def parse_int_literal(lexeme: str) -> int:
    try:
        number = int(lexeme, 10)
    except ValueError:
        raise NotANumber(f"Not an int: {lexeme}", lexeme=lexeme, rule="LITERAL")
    if number < INT_MIN or number > INT_MAX:
        raise NotANumber(f"Not an int: {lexeme}", lexeme=lexeme, rule="LITERAL")
    return number


def _safe_div(a: int, b: int) -> int:
    if b == 0:
        raise DivisionByZero("Division by zero", rule="DIV")
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def apply_binary(op: Column, left: Value, right: Value) -> Value:
    if left.type == TYPE_INT and right.type == TYPE_INT:
        a, b = left.value, right.value
        if op is Column.PLUS:
            return Value.of_int(a + b)
        if op is Column.MINUS:
            return Value.of_int(a - b)
        if op is Column.MULT:
            return Value.of_int(a * b)
        if op is Column.DIV:
            return Value.of_int(_safe_div(a, b))
        raise StatementError(f"Unsupported operator {op.value}", rule="APPLY")
    # Any text operand turns every operator into concatenation.
    return Value.of_str(left.text() + right.text())


@dataclass
class StatementContext:
    state: State = State.S0
    pending_type: Optional[str] = None
    pending_name: Optional[str] = None
    is_declaration: bool = False
    operands: List[Value] = field(default_factory=list)
    operators: List[int] = field(default_factory=list)

    def has_residue(self) -> bool:
        return bool(self.operands or self.operators)


@dataclass
class StatementResult:
    ok: bool
    error: Optional[StatementError] = None
    incomplete: bool = False

    def __bool__(self) -> bool:
        return self.ok


class Interpreter:
    def __init__(
        self,
        registry: TokenRegistry,
        *,
        output_sink: Optional[Callable[[str], None]] = None,
        table: Optional[SymbolTable] = None,
        verbose: bool = False,
    ) -> None:
        self.registry = registry
        self.output_sink = output_sink or (lambda _text: None)
        self.table = table if table is not None else SymbolTable()
        self.verbose = verbose
        self.logger = StateLogger(verbose=verbose)
        self.logger.record(statement="<seed>", rewrite_record={"rule": "SEED"})

        self.columns: Dict[int, Column] = {}
        self.codes: Dict[Column, int] = {}
        for category, lexeme, column in SPECIAL_LEXEMES:
            code = registry.code_for(category, lexeme)
            if code is None:
                continue
            self.columns[code] = column
            self.codes[column] = code

        self.precedence: Dict[int, int] = {}
        if Column.PLUS in self.codes:
            self.precedence[self.codes[Column.PLUS]] = PLUS_PRECEDENCE

    # Public API

    @property
    def symbols(self) -> Mapping[str, Value]:
        return self.table.view()

    def dump_symbols(self) -> str:
        return self.table.dump()

    def execute(self, tokens: Sequence[str]) -> bool:
        return self.execute_statement(tokens).ok

    def execute_statement(self, tokens: Sequence[str]) -> StatementResult:
        encoded = [self.registry.encode(lexeme) for lexeme in tokens if lexeme]
        if not encoded:
            return StatementResult(ok=False, error=StatementSyntaxError("Empty statement", rule="SYNTAX"))
        statement = " ".join(token.lexeme for token in encoded)

        ctx = StatementContext()
        for token in encoded:
            try:
                ctx = self._step(ctx, self.classify(token), token, statement)
            except StatementError as error:
                if error.lexeme is None:
                    error.lexeme = token.lexeme
                self._reject(error, statement)
                return StatementResult(ok=False, error=error)

        if not ctx.has_residue():
            return StatementResult(ok=True)
        try:
            self._commit_value(ctx, self._reduce_all(ctx), statement)
        except StatementError as error:
            self._emit("!   Incomplete statement (missing ';')")
            self._log_step(rule="INCOMPLETE", statement=statement, extra={"error": error.message})
            return StatementResult(ok=True, error=error, incomplete=True)
        return StatementResult(ok=True, incomplete=True)

    def classify(self, token: EncodedToken) -> Column:
        column = self.columns.get(token.code)
        if column is not None:
            return column
        if token.category is TokenCategory.SYMBOL:
            return Column.LITERAL if is_quoted(token.lexeme) else Column.SYMBOL
        if token.category is TokenCategory.LITERAL:
            return Column.LITERAL
        return Column.OTHER

    # Recognizer

    def _step(
        self,
        ctx: StatementContext,
        column: Column,
        token: EncodedToken,
        statement: str,
    ) -> StatementContext:
        state = ctx.state
        if state is State.S0:
            if column in DECLARED_TYPES:
                ctx.pending_type = DECLARED_TYPES[column]
                ctx.is_declaration = True
                ctx.state = State.DECL_TYPE
                return ctx
            if column is Column.SYMBOL:
                ctx.pending_name = token.lexeme
                ctx.is_declaration = False
                ctx.state = State.ASSIGN_LHS
                return ctx
            if column is Column.SEMI:
                return ctx
            raise StatementSyntaxError("Expected declaration or assignment", rule="SYNTAX")

        if state is State.DECL_TYPE:
            if column is Column.SYMBOL:
                ctx.pending_name = token.lexeme
                ctx.state = State.DECL_NAME
                return ctx
            raise StatementSyntaxError("Expected name after type", rule="SYNTAX")

        if state is State.DECL_NAME:
            if column is Column.SEMI:
                self._commit_declaration(ctx, statement)
                return StatementContext()
            if column is Column.EQ:
                self._begin_expression(ctx)
                ctx.is_declaration = True
                ctx.state = State.AFTER_EQ
                return ctx
            raise StatementSyntaxError("Expected '=' or ';' after name", rule="SYNTAX")

        if state is State.ASSIGN_LHS:
            if column is Column.EQ:
                self._begin_expression(ctx)
                ctx.state = State.AFTER_EQ
                return ctx
            raise StatementSyntaxError("Expected '=' after identifier", rule="SYNTAX")

        # AFTER_EQ
        if column is Column.LITERAL:
            ctx.operands.append(self._literal_value(token.lexeme))
        elif column is Column.SYMBOL:
            ctx.operands.append(self.table.get(token.lexeme))
        elif column in BINARY_COLUMNS:
            self._push_operator(ctx, token.code)
        elif column is Column.LPAREN:
            ctx.operators.append(token.code)
        elif column is Column.RPAREN:
            self._reduce_until_lparen(ctx)
        elif column is Column.SEMI:
            self._commit_value(ctx, self._reduce_all(ctx), statement)
            return StatementContext()
        else:
            raise StatementSyntaxError("Unexpected token in expression", rule="SYNTAX")
        return ctx

    # Expression stacks

    def _begin_expression(self, ctx: StatementContext) -> None:
        ctx.operands.clear()
        ctx.operators.clear()

    def _literal_value(self, lexeme: str) -> Value:
        if is_quoted(lexeme):
            return Value.of_str(lexeme[1:-1])
        return Value.of_int(parse_int_literal(lexeme))

    def _prec(self, code: int) -> int:
        return self.precedence.get(code, FALLBACK_PRECEDENCE)

    def _is_lparen(self, code: int) -> bool:
        return self.columns.get(code) is Column.LPAREN

    def _push_operator(self, ctx: StatementContext, code: int) -> None:
        operators = ctx.operators
        while operators and not self._is_lparen(operators[-1]) and self._prec(operators[-1]) >= self._prec(code):
            self._apply_top(ctx)
        operators.append(code)

    def _reduce_until_lparen(self, ctx: StatementContext) -> None:
        operators = ctx.operators
        while operators and not self._is_lparen(operators[-1]):
            self._apply_top(ctx)
        if not operators:
            raise MismatchedParenthesis("Mismatched ')'", rule="PAREN")
        operators.pop()

    def _reduce_all(self, ctx: StatementContext) -> Value:
        operators = ctx.operators
        while operators:
            if self._is_lparen(operators[-1]):
                raise MismatchedParenthesis("Mismatched '('", rule="PAREN")
            self._apply_top(ctx)
        if not ctx.operands:
            raise EmptyExpression("Empty expression", rule="EXPR")
        return ctx.operands.pop()

    def _apply_top(self, ctx: StatementContext) -> None:
        code = ctx.operators.pop()
        lexeme = self.registry.decode(code)
        if len(ctx.operands) < 2:
            raise EmptyExpression(f"Missing operand for '{lexeme}'", lexeme=lexeme, rule="EXPR")
        right = ctx.operands.pop()
        left = ctx.operands.pop()
        op = self.columns.get(code, Column.OTHER)
        try:
            ctx.operands.append(apply_binary(op, left, right))
        except StatementError as error:
            if error.lexeme is None:
                error.lexeme = lexeme
            raise

    # Commit

    def _commit_declaration(self, ctx: StatementContext, statement: str) -> None:
        name = ctx.pending_name
        value = zero_value(ctx.pending_type)
        self.table.declare(name, value)
        self._emit(f"    decl {name}:{ctx.pending_type} = {value}")
        self._log_step(rule="DECL", statement=statement, extra={"name": name, "value": str(value)})

    def _commit_value(self, ctx: StatementContext, value: Value, statement: str) -> None:
        name = ctx.pending_name
        if ctx.is_declaration:
            if value.type != ctx.pending_type:
                raise TypeMismatch(f"Type mismatch: need {ctx.pending_type}", lexeme=name, rule="DECL_INIT")
            self.table.declare(name, value)
            self._emit(f"    decl-init {name}:{ctx.pending_type} = {value}")
            self._log_step(rule="DECL_INIT", statement=statement, extra={"name": name, "value": str(value)})
        else:
            self.table.assign(name, value)
            self._emit(f"    assign {name} = {value}")
            self._log_step(rule="ASSIGN", statement=statement, extra={"name": name, "value": str(value)})

    # Trace

    def _reject(self, error: StatementError, statement: str) -> None:
        self._emit(f"!   {error.message} near '{error.lexeme}'")
        self._log_step(
            rule="ERROR",
            statement=statement,
            extra={"error": error.__class__.__name__, "message": error.message, "lexeme": error.lexeme},
        )

    def _emit(self, text: str) -> None:
        self.output_sink(text)

    def _log_step(self, *, rule: str, statement: Optional[str], extra: Optional[Dict[str, Any]] = None) -> StateEntry:
        env_snapshot = self.table.snapshot() if self.verbose else None
        rewrite = {"rule": rule}
        if extra:
            rewrite.update(extra)
        return self.logger.record(statement=statement, rewrite_record=rewrite, env_snapshot=env_snapshot)
