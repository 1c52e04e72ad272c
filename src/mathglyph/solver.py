"""
Solve arithmetic, linear equations, and simple word problems from text.

The input is normalised (operator words become symbols), scanned into
tokens, and offered to each rule in turn:

1. equation      exactly one ``=``: linear solve for the variable, else
                 evaluate both sides as plain numbers
2. arithmetic    ``operand op operand`` where an operand may be ``a/b``
3. word problem  keyword-selected fold over the numbers in the text,
                 or the sum of two or more fractions

The first rule that produces a result wins. ``solve`` never raises; text no
rule understands comes back with ``handled=False``.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from functools import reduce
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .constants import DEFAULT_VARIABLE
from .errors import MathGlyphError
from .evaluator import divide, evaluate, format_number
from .merge import Token as StreamToken
from .merge import tokens_to_text

_SCANNER = re.compile(
    r"""
      (?P<glyph>\(circle\)|\[[a-z]+\]|->)
    | (?P<number>\d+(?:\.\d+)?|\.\d+)
    | (?P<op>[+\-*/])
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<eq>=)
    | (?P<word>[^\W\d_]+)
    | (?P<space>\s+)
    | (?P<other>.)
    """,
    re.VERBOSE,
)

_PHRASES: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\bmultiplied\s+by\b"), " * "),
    (re.compile(r"\bmultiply\s+by\b"), " * "),
    (re.compile(r"\btimes\b"), " * "),
    (re.compile(r"\bdivided\s+by\b"), " / "),
    (re.compile(r"\bplus\b"), " + "),
    (re.compile(r"\bminus\b"), " - "),
)

_CHARACTERS = {
    "×": "*",  # multiplication sign
    "·": "*",  # middle dot
    "÷": "/",  # division sign
    "−": "-",  # minus sign
    "\u2013": "-",
    "\u2014": "-",
}

SUM_WORDS = frozenset({"sum", "add", "added", "adding", "addition", "plus", "total"})
DIFFERENCE_WORDS = frozenset({"difference", "minus", "less", "subtract", "subtracted"})
PRODUCT_WORDS = frozenset({"product", "times", "multiply", "multiplied"})
QUOTIENT_WORDS = frozenset({"divide", "divided", "quotient"})

_SENTENCE_MARKS = frozenset(".,;:?")
_EXPRESSION_KINDS = ("number", "op", "lparen", "rparen")


@dataclass(frozen=True)
class SolveResult:
    handled: bool
    answer: str = ""
    steps: Tuple[str, ...] = ()
    value: Optional[float] = None
    rule: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["steps"] = list(self.steps)
        return data


UNHANDLED = SolveResult(handled=False)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    start: int
    end: int

    def is_op(self, symbol: str) -> bool:
        return self.kind == "op" and self.text == symbol


@dataclass(frozen=True)
class Operand:
    text: str
    value: float
    numerator: Optional[float] = None
    denominator: Optional[float] = None

    @property
    def is_fraction(self) -> bool:
        return self.denominator is not None

    def as_expression(self) -> str:
        if self.is_fraction or self.text.startswith("-"):
            return f"({self.text})"
        return self.text


def normalise_text(text: str) -> str:
    """Lower-case and rewrite operator words and glyphs as ASCII symbols."""
    lowered = text.lower()
    for char, symbol in _CHARACTERS.items():
        lowered = lowered.replace(char, symbol)
    for pattern, symbol in _PHRASES:
        lowered = pattern.sub(symbol, lowered)
    return lowered


def tokenize(text: str) -> List[Token]:
    """Scan normalised text; whitespace is dropped, positions are kept."""
    tokens: List[Token] = []
    for match in _SCANNER.finditer(text):
        kind = match.lastgroup or "other"
        if kind == "space":
            continue
        tokens.append(Token(kind, match.group(), match.start(), match.end()))
    return _spaced_x_as_times(tokens, text)


def _spaced_x_as_times(tokens: List[Token], text: str) -> List[Token]:
    """``3 x 4`` reads as multiplication when the x stands alone between numbers."""
    out = list(tokens)
    for i in range(1, len(out) - 1):
        tok = out[i]
        if tok.kind != "word" or tok.text != "x":
            continue
        if out[i - 1].kind != "number" or out[i + 1].kind != "number":
            continue
        before = text[tok.start - 1] if tok.start > 0 else ""
        after = text[tok.end] if tok.end < len(text) else ""
        if before.isspace() and after.isspace():
            out[i] = Token("op", "*", tok.start, tok.end)
    return out


def _is_foreign(tok: Token) -> bool:
    """A symbol outside the arithmetic alphabet, such as ``^``, ``%`` or ``!``."""
    return tok.kind == "other" and tok.text not in _SENTENCE_MARKS


def _expression_run(tokens: Iterable[Token], variable: str) -> List[Token]:
    """
    Leading tokens that belong to one expression, read outward from ``=``.

    The run stops at the first word that is not the variable and is neither
    an operand of a neighbouring operator nor written against the previous
    token. Foreign symbols stay in the run so the evaluator rejects them.
    """
    run: List[Token] = []
    for tok in tokens:
        bound = tok.kind in _EXPRESSION_KINDS or _is_foreign(tok)
        if tok.kind == "word":
            if tok.text == variable:
                bound = True
            elif run:
                prev = run[-1]
                bound = prev.kind == "op" or prev.end == tok.start or tok.end == prev.start
        if not bound:
            break
        run.append(tok)
    return run


def _render(tokens: Sequence[Token], variable: str | None = None, value: str = "1") -> str:
    """Join tokens into evaluator input, making implicit products explicit."""
    parts: List[str] = []
    prev: Token | None = None
    for tok in tokens:
        starts_operand = tok.kind in ("number", "word", "lparen")
        if prev is not None and starts_operand and prev.kind in ("number", "word", "rparen"):
            parts.append("*")
        if variable is not None and tok.kind == "word" and tok.text == variable:
            parts.append(value)
        else:
            parts.append(tok.text)
        prev = tok
    return " ".join(parts)


def _split_terms(tokens: Sequence[Token]) -> List[Tuple[float, List[Token]]]:
    """Split a side on top-level ``+``/``-``, folding leading signs into the term."""
    terms: List[Tuple[float, List[Token]]] = []
    sign = 1.0
    current: List[Token] = []
    depth = 0
    for tok in tokens:
        if tok.kind == "lparen":
            depth += 1
        elif tok.kind == "rparen":
            depth -= 1
        if depth == 0 and tok.kind == "op" and tok.text in "+-":
            if not current:
                if tok.text == "-":
                    sign = -sign
                continue
            if current[-1].kind != "op":
                terms.append((sign, current))
                current = []
                sign = -1.0 if tok.text == "-" else 1.0
                continue
        current.append(tok)
    if current:
        terms.append((sign, current))
    return terms


def parse_linear_side(tokens: Sequence[Token], variable: str) -> Tuple[float, float, int]:
    """Return ``(coefficient, constant, variable_terms)`` for one side."""
    coefficient = 0.0
    constant = 0.0
    variable_terms = 0
    for sign, term in _split_terms(tokens):
        occurrences = sum(1 for tok in term if tok.kind == "word")
        if occurrences == 0:
            constant += sign * evaluate(_render(term))
        elif occurrences == 1:
            at_zero = evaluate(_render(term, variable, "0"))
            at_one = evaluate(_render(term, variable, "1"))
            if not (math.isfinite(at_zero) and math.isfinite(at_one)):
                raise MathGlyphError(f"Term is not linear in {variable}")
            coefficient += sign * (at_one - at_zero)
            constant += sign * at_zero
            variable_terms += 1
        else:
            raise MathGlyphError(f"Term is not linear in {variable}")
    return coefficient, constant, variable_terms


def solve_linear(left: Sequence[Token], right: Sequence[Token], variable: str) -> Optional[SolveResult]:
    try:
        cl, kl, vl = parse_linear_side(left, variable)
        cr, kr, vr = parse_linear_side(right, variable)
    except (MathGlyphError, ArithmeticError):
        return None
    a = cl - cr
    b = kr - kl
    if vl + vr == 0 or a == 0:
        return None
    value = b / a
    fmt = format_number
    steps = (
        f"Parsed left: coeff={fmt(cl)}, const={fmt(kl)}",
        f"Parsed right: coeff={fmt(cr)}, const={fmt(kr)}",
        f"Solve {fmt(a)}*{variable} = {fmt(b)} -> {variable} = {fmt(b)}/{fmt(a)} = {fmt(value)}",
    )
    return SolveResult(True, f"{variable} = {fmt(value)}", steps, value, "equation")


def solve_equation(tokens: Sequence[Token], variable: str = DEFAULT_VARIABLE) -> Optional[SolveResult]:
    equals = [i for i, tok in enumerate(tokens) if tok.kind == "eq"]
    if len(equals) != 1:
        return None
    left = _expression_run(reversed(tokens[: equals[0]]), variable)[::-1]
    right = _expression_run(tokens[equals[0] + 1 :], variable)
    if not left or not right:
        return None

    solved = solve_linear(left, right, variable)
    if solved is not None:
        return solved

    try:
        lval = evaluate(_render(left))
        rval = evaluate(_render(right))
    except MathGlyphError:
        return None
    fmt = format_number
    verdict = "Both sides are equal" if lval == rval else "Sides differ"
    steps = (f"Evaluated left: {fmt(lval)}", f"Evaluated right: {fmt(rval)}", verdict)
    return SolveResult(True, f"Left = {fmt(lval)}, Right = {fmt(rval)}", steps, None, "equality")


def read_operand(tokens: Sequence[Token], i: int) -> Optional[Tuple[Operand, int]]:
    """``[sign] NUMBER ["/" NUMBER]`` starting at ``i``."""
    n = len(tokens)
    j = i
    sign = ""
    if j + 1 < n and tokens[j].kind == "op" and tokens[j].text in "+-" and tokens[j + 1].kind == "number":
        sign = "-" if tokens[j].text == "-" else ""
        j += 1
    if j >= n or tokens[j].kind != "number":
        return None
    num = tokens[j]
    j += 1
    if j + 1 < n and tokens[j].is_op("/") and tokens[j + 1].kind == "number":
        den = tokens[j + 1]
        numerator = float(sign + num.text)
        denominator = float(den.text)
        operand = Operand(
            text=f"{sign}{num.text}/{den.text}",
            value=divide(numerator, denominator),
            numerator=numerator,
            denominator=denominator,
        )
        return operand, j + 2
    return Operand(text=f"{sign}{num.text}", value=float(sign + num.text)), j


def scan_operands(tokens: Sequence[Token]) -> List[Operand]:
    operands: List[Operand] = []
    i = 0
    while i < len(tokens):
        found = read_operand(tokens, i)
        if found is None:
            i += 1
            continue
        operand, i = found
        operands.append(operand)
    return operands


def apply_operator(a: float, op: str, b: float) -> float:
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        return float("inf")
    return a / b


def _single_operation(a: Operand, op: str, b: Operand) -> SolveResult:
    fmt = format_number
    result = apply_operator(a.value, op, b.value)
    steps = (
        f"Parsed operands: {a.text} => {fmt(a.value)}, {b.text} => {fmt(b.value)}",
        f"Operation: {fmt(a.value)} {op} {fmt(b.value)} = {fmt(result)}",
    )
    return SolveResult(True, f"Answer: {fmt(result)}", steps, result, "arithmetic")


def solve_arithmetic(tokens: Sequence[Token]) -> Optional[SolveResult]:
    n = len(tokens)
    for i in range(n):
        first = read_operand(tokens, i)
        if first is None:
            continue
        operand, j = first
        chain: List[Tuple[str, Operand]] = []
        while j < n and tokens[j].kind == "op":
            following = read_operand(tokens, j + 1)
            if following is None:
                break
            chain.append((tokens[j].text, following[0]))
            j = following[1]
        if not chain:
            continue
        if (i > 0 and _is_foreign(tokens[i - 1])) or (j < n and _is_foreign(tokens[j])):
            return None
        if len(chain) == 1:
            op, other = chain[0]
            return _single_operation(operand, op, other)

        expression = " ".join(
            [operand.as_expression()] + [f"{op} {other.as_expression()}" for op, other in chain]
        )
        try:
            result = evaluate(expression)
        except MathGlyphError:
            return None
        fmt = format_number
        parsed = ", ".join(f"{o.text} => {fmt(o.value)}" for o in [operand] + [o for _, o in chain])
        steps = (f"Parsed operands: {parsed}", f"Evaluated: {expression} = {fmt(result)}")
        return SolveResult(True, f"Answer: {fmt(result)}", steps, result, "arithmetic")

    fractions = [o for o in scan_operands(tokens) if o.is_fraction]
    if len(fractions) == 1:
        fraction = fractions[0]
        a = Operand(format_number(fraction.numerator), fraction.numerator)
        b = Operand(format_number(fraction.denominator), fraction.denominator)
        return _single_operation(a, "/", b)
    return None


def solve_word_problem(tokens: Sequence[Token], words: Iterable[str]) -> Optional[SolveResult]:
    vocabulary = set(words)
    operands = scan_operands(tokens)
    fmt = format_number
    if len(operands) >= 2:
        values = [o.value for o in operands]
        listing = f"Numbers: {', '.join(o.text for o in operands)}"
        if vocabulary & SUM_WORDS:
            total = sum(values)
            return SolveResult(True, f"Answer: {fmt(total)}", (listing, f"Sum = {fmt(total)}"), total, "word_problem")
        if vocabulary & DIFFERENCE_WORDS:
            diff = reduce(lambda a, b: a - b, values)
            return SolveResult(
                True, f"Answer: {fmt(diff)}", (listing, f"Difference = {fmt(diff)}"), diff, "word_problem"
            )
        if vocabulary & PRODUCT_WORDS:
            product = reduce(lambda a, b: a * b, values, 1.0)
            return SolveResult(
                True, f"Answer: {fmt(product)}", (listing, f"Product = {fmt(product)}"), product, "word_problem"
            )
        if vocabulary & QUOTIENT_WORDS:
            quotient = reduce(divide, values[1:], values[0])
            return SolveResult(
                True, f"Answer: {fmt(quotient)}", (listing, f"Quotient = {fmt(quotient)}"), quotient, "word_problem"
            )

    fractions = [o for o in operands if o.is_fraction]
    if len(fractions) >= 2:
        total = sum(o.value for o in fractions)
        steps = (f"Fractions: {', '.join(o.text for o in fractions)}", f"Sum = {fmt(total)}")
        return SolveResult(True, f"Answer: {fmt(total)}", steps, total, "fractions")
    return None


def solve(source: Union[str, Iterable[StreamToken], None], variable: str = DEFAULT_VARIABLE) -> SolveResult:
    """Solve raw chat text or a merged token stream."""
    if source is None:
        return UNHANDLED
    text = source if isinstance(source, str) else tokens_to_text(source)
    text = text.strip()
    if not text:
        return UNHANDLED

    words = re.findall(r"[^\W\d_]+", text.lower())
    normalised = normalise_text(text)
    tokens = tokenize(normalised)
    variable = variable.lower()

    for rule in (
        lambda: solve_equation(tokens, variable),
        lambda: solve_arithmetic(tokens),
        lambda: solve_word_problem(tokens, words),
    ):
        try:
            result = rule()
        except (MathGlyphError, ArithmeticError):
            result = None
        if result is not None:
            return result
    return UNHANDLED
