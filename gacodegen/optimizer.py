"""
Rewrite an operation's expressions to a canonical fixed point.

Rules, applied in order on every iteration:
  a. drop terms whose coefficient is zero
  b. fold literal arithmetic
  c. merge terms that differ only in their coefficient
  d. hoist subexpressions repeated within or across components into the arena
  e. drop multiplication by one and addition of zero, collapse singletons

Term identity comes from :func:`gacodegen.expression.key`, which ignores the
order in which factors and terms were generated.
"""

from collections import Counter

from gacodegen.expression import (
    LEAVES, Construct, Literal, Product, Reciprocal, Shared, Sqrt, Sum, as_terms, key, rewrite,
)
from gacodegen.log import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 32


def _children(expr):

    if isinstance(expr, Product):
        return expr.factors
    if isinstance(expr, Sum):
        return expr.terms
    if isinstance(expr, Construct):
        return expr.components
    if isinstance(expr, (Sqrt, Reciprocal)):
        return (expr.value,)
    return ()

def _rebuild(expr, children):

    if isinstance(expr, Product):
        return Product(expr.coefficient, tuple(children))
    if isinstance(expr, Sum):
        return Sum(tuple(children))
    if isinstance(expr, Construct):
        return Construct(expr.class_name, tuple(children))
    if isinstance(expr, (Sqrt, Reciprocal)):
        return type(expr)(children[0])
    return expr

def _make_term(coefficient: int, factors):

    if not factors:
        return Literal(coefficient)
    if coefficient == 1 and len(factors) == 1:
        return factors[0]
    return Product(coefficient, tuple(factors))


def simplify(expr):
    """Rules a, b, c and e, bottom-up."""
    if isinstance(expr, Product):
        coefficient = expr.coefficient
        factors = []
        for f in expr.factors:
            f = simplify(f)
            if isinstance(f, Literal):
                coefficient *= f.value
            elif isinstance(f, Product):
                coefficient *= f.coefficient
                factors.extend(f.factors)
            else:
                factors.append(f)
        if coefficient == 0:
            return Literal(0)
        return _make_term(coefficient, sorted(factors, key=key))

    if isinstance(expr, Sum):
        merged = {}
        for t in expr.terms:
            for coefficient, factors in as_terms(simplify(t)):
                k = tuple(key(f) for f in factors)
                if k in merged:
                    merged[k][0] += coefficient
                else:
                    merged[k] = [coefficient, factors]
        terms = [_make_term(c, f) for c, f in merged.values() if c != 0]
        if not terms:
            return Literal(0)
        if len(terms) == 1:
            return terms[0]
        return Sum(tuple(terms))

    if isinstance(expr, (Sqrt, Reciprocal)):
        return type(expr)(simplify(expr.value))

    return expr


def _hoistable(expr) -> bool:

    if isinstance(expr, (Sum, Sqrt, Reciprocal)):
        return True
    return isinstance(expr, Product) and len(expr.factors) > 1

def _hoist(operation):
    """Rule d: share subexpressions repeated within or across components through the arena."""
    arena = operation.arena
    known = {key(e): i for i, e in enumerate(arena)}
    counts = Counter()

    def count(expr, is_root):
        if not is_root and _hoistable(expr):
            counts[key(expr)] += 1
        for child in _children(expr):
            count(child, False)

    for root in operation.components + arena:
        count(root, True)
    repeated = {k for k, n in counts.items() if n >= 2}

    def replace(expr, is_root):
        if not is_root and _hoistable(expr):
            k = key(expr)
            if k not in known and k in repeated:
                known[k] = len(arena)
                arena.append(expr)
            if k in known:
                return Shared(known[k])
        children = _children(expr)
        if not children:
            return expr
        return _rebuild(expr, [replace(c, False) for c in children])

    operation.components = [replace(c, True) for c in operation.components]
    i = 0
    while i < len(arena):
        arena[i] = replace(arena[i], True)
        i += 1


def _compact(operation):
    """Inline arena entries used once or holding a leaf, renumber the rest in dependency order."""
    arena = operation.arena
    counts = Counter()

    def count(expr):
        if isinstance(expr, Shared):
            counts[expr.index] += 1
            if counts[expr.index] == 1:
                count(arena[expr.index])
            return
        for child in _children(expr):
            count(child)

    for c in operation.components:
        count(c)
    inline = {i for i, n in counts.items() if n == 1 or isinstance(arena[i], LEAVES)}

    def resolve(expr):
        def leaf(node):
            if isinstance(node, Shared) and node.index in inline:
                return resolve(arena[node.index])
            return node
        return rewrite(expr, leaf)

    kept = {i: resolve(arena[i]) for i in counts if i not in inline}
    components = [resolve(c) for c in operation.components]

    order = []
    renumber = {}

    def visit(expr):
        if isinstance(expr, Shared):
            if expr.index not in renumber:
                visit(kept[expr.index])
                renumber[expr.index] = len(order)
                order.append(expr.index)
            return
        for child in _children(expr):
            visit(child)

    for c in components:
        visit(c)

    def renamed(expr):
        return rewrite(expr, lambda n: Shared(renumber[n.index]) if isinstance(n, Shared) else n)

    operation.arena = [renamed(kept[i]) for i in order]
    operation.components = [renamed(c) for c in components]


def _state(operation):

    return tuple(operation.components), tuple(operation.arena)


def optimize(operation, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> int:
    """Optimize ``operation`` in place; returns the number of iterations used."""
    for iteration in range(1, max_iterations + 1):
        before = _state(operation)
        operation.arena = [simplify(e) for e in operation.arena]
        operation.components = [simplify(c) for c in operation.components]
        _hoist(operation)
        _compact(operation)
        if _state(operation) == before:
            logger.debug("%s: fixed point after %d iteration(s), %d shared",
                         operation.pair, iteration, len(operation.arena))
            return iteration
    logger.warning("%s: no fixed point after %d iterations", operation.pair, max_iterations)
    return max_iterations
