"""
Expression trees for generated operators.

Nodes are immutable. A result component is an independent tree; common
subexpressions live in a per-operation arena and are referenced by
:class:`Shared` index, never by a shared subtree.
"""

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Literal:
    value: int


@dataclass(frozen=True)
class ComponentRef:
    """Slot ``slot`` of operand ``operand`` (0 = left, 1 = right)."""
    operand: int
    class_name: str
    slot: int


@dataclass(frozen=True)
class Product:
    coefficient: int
    factors: Tuple


@dataclass(frozen=True)
class Sum:
    terms: Tuple


@dataclass(frozen=True)
class Shared:
    index: int


@dataclass(frozen=True)
class Sqrt:
    value: object


@dataclass(frozen=True)
class Reciprocal:
    """``1 / value``; only built over expressions that are not identically zero."""
    value: object


@dataclass(frozen=True)
class Construct:
    class_name: str
    components: Tuple


# Lane-level nodes, produced by the legalizer.

@dataclass(frozen=True)
class LaneRef:
    operand: int
    group: int
    lane: int


@dataclass(frozen=True)
class GroupRef:
    operand: int
    group: int


@dataclass(frozen=True)
class Swizzle:
    source: GroupRef
    lanes: Tuple[int, ...]


@dataclass(frozen=True)
class Gather:
    sources: Tuple[LaneRef, ...]


@dataclass(frozen=True)
class Broadcast:
    value: object


@dataclass(frozen=True)
class VectorLiteral:
    values: Tuple[int, ...]


LEAVES = (Literal, ComponentRef, Shared, LaneRef, GroupRef)


def key(expr):
    """Canonical key: equal for trees equal up to reordering of sums and products."""
    if isinstance(expr, Literal):
        return (0, expr.value)
    if isinstance(expr, ComponentRef):
        return (1, expr.operand, expr.slot)
    if isinstance(expr, Shared):
        return (2, expr.index)
    if isinstance(expr, LaneRef):
        return (3, expr.operand, expr.group, expr.lane)
    if isinstance(expr, Product):
        return (4, expr.coefficient, tuple(sorted(key(f) for f in expr.factors)))
    if isinstance(expr, Sum):
        return (5, tuple(sorted(key(t) for t in expr.terms)))
    if isinstance(expr, GroupRef):
        return (6, expr.operand, expr.group)
    if isinstance(expr, Swizzle):
        return (7, key(expr.source), expr.lanes)
    if isinstance(expr, Gather):
        return (8, tuple(key(s) for s in expr.sources))
    if isinstance(expr, Broadcast):
        return (9, key(expr.value))
    if isinstance(expr, VectorLiteral):
        return (10, expr.values)
    if isinstance(expr, Construct):
        return (11, expr.class_name, tuple(key(c) for c in expr.components))
    if isinstance(expr, Sqrt):
        return (12, key(expr.value))
    if isinstance(expr, Reciprocal):
        return (13, key(expr.value))
    raise TypeError(f"not an expression: {expr!r}")


def factor_key(expr):
    """Key of a term with its coefficient stripped, for merging signed terms."""
    if isinstance(expr, Product):
        return tuple(sorted(key(f) for f in expr.factors))
    return (key(expr),)


def as_terms(expr):
    """View ``expr`` as a list of ``(coefficient, factors)`` terms."""
    if isinstance(expr, Sum):
        out = []
        for t in expr.terms:
            out.extend(as_terms(t))
        return out
    if isinstance(expr, Product):
        return [(expr.coefficient, tuple(expr.factors))]
    if isinstance(expr, Literal):
        return [(expr.value, ())]
    return [(1, (expr,))]


def rewrite(expr, leaf_fn):
    """Rebuild ``expr`` with every leaf replaced by ``leaf_fn(leaf)``."""
    if isinstance(expr, Product):
        return Product(expr.coefficient, tuple(rewrite(f, leaf_fn) for f in expr.factors))
    if isinstance(expr, Sum):
        return Sum(tuple(rewrite(t, leaf_fn) for t in expr.terms))
    if isinstance(expr, Construct):
        return Construct(expr.class_name, tuple(rewrite(c, leaf_fn) for c in expr.components))
    if isinstance(expr, (Sqrt, Reciprocal)):
        return type(expr)(rewrite(expr.value, leaf_fn))
    return leaf_fn(expr)


def is_flat(expr) -> bool:
    """True for sums of products of component references and literals."""
    for _, factors in as_terms(expr):
        for f in factors:
            if not isinstance(f, (ComponentRef, LaneRef)):
                return False
    return True


def expand(expr, arena=()):
    """
    Multiply ``expr`` out into a polynomial over component references:
    ``{sorted (operand, slot) tuple: coefficient}`` with zero entries removed.

    A square root or reciprocal is kept as one opaque variable, identified by
    the expanded polynomial of its argument, so rewrites of the argument do
    not change the result.
    """
    if isinstance(expr, (Sqrt, Reciprocal)):
        inner = expand(expr.value, arena)
        if not inner:
            if isinstance(expr, Sqrt):
                return {}
            raise ZeroDivisionError(f"reciprocal of an expression that is identically zero: {expr!r}")
        atom = (-1, type(expr).__name__, tuple(sorted(inner.items())))
        return {(atom,): 1}
    if isinstance(expr, Literal):
        return {(): expr.value} if expr.value else {}
    if isinstance(expr, ComponentRef):
        return {((expr.operand, expr.slot),): 1}
    if isinstance(expr, Shared):
        return expand(arena[expr.index], arena)
    if isinstance(expr, Sum):
        out = {}
        for t in expr.terms:
            for monomial, c in expand(t, arena).items():
                out[monomial] = out.get(monomial, 0) + c
        return {m: c for m, c in out.items() if c}
    if isinstance(expr, Product):
        out = {(): expr.coefficient} if expr.coefficient else {}
        for f in expr.factors:
            poly = expand(f, arena)
            nxt = {}
            for m1, c1 in out.items():
                for m2, c2 in poly.items():
                    m = tuple(sorted(m1 + m2))
                    nxt[m] = nxt.get(m, 0) + c1 * c2
            out = {m: c for m, c in nxt.items() if c}
        return out
    raise TypeError(f"cannot expand {expr!r}")


def evaluate(expr, values, arena=()):
    """Numerically evaluate a compiled (pre-legalization) expression.

    ``values`` maps ``(operand, slot)`` to a number.
    """
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, ComponentRef):
        return values[(expr.operand, expr.slot)]
    if isinstance(expr, Shared):
        return evaluate(arena[expr.index], values, arena)
    if isinstance(expr, Sum):
        return sum(evaluate(t, values, arena) for t in expr.terms)
    if isinstance(expr, Product):
        out = expr.coefficient
        for f in expr.factors:
            out = out * evaluate(f, values, arena)
        return out
    if isinstance(expr, Sqrt):
        return math.sqrt(evaluate(expr.value, values, arena))
    if isinstance(expr, Reciprocal):
        return 1.0 / evaluate(expr.value, values, arena)
    raise TypeError(f"cannot evaluate {expr!r}")
