"""
Cross-check generated tables and formulas against the clifford library.

The clifford layout is built from the same generator squares; blades are
rebuilt from its basis vectors and located in ``mv.value`` by their single
nonzero coefficient.
"""

import random

import clifford
import numpy as np

from gacodegen.algebra import ProductKind, mask_to_name, positions
from gacodegen.compiler import OperatorKind
from gacodegen.errors import AlgebraError
from gacodegen.expression import evaluate
from gacodegen.log import get_logger

logger = get_logger(__name__)

# clifford gets slow well before the 16 generator cap
MAX_CHECKED_GENERATORS = 8

CLIFFORD_PRODUCTS = {
    ProductKind.GEOMETRIC: lambda a, b: a * b,
    ProductKind.OUTER: lambda a, b: a ^ b,
    ProductKind.LEFT_CONTRACTION: lambda a, b: a << b,
}

def _norm(a):

    return (a * ~a).value[0]

def _inverse(a):

    return ~a * (1.0 / _norm(a))


CLIFFORD_OPERATORS = {
    OperatorKind.ZERO: lambda a: a * 0.0,
    OperatorKind.ONE: lambda a: a.layout.scalar,
    OperatorKind.NEG: lambda a: -a,
    OperatorKind.REVERSAL: lambda a: ~a,
    OperatorKind.AUTOMORPHISM: lambda a: a.gradeInvol(),
    OperatorKind.CONJUGATION: lambda a: a.conjugate(),
    OperatorKind.SQUARED_MAGNITUDE: lambda a: (a * ~a)(0),
    OperatorKind.MAGNITUDE: lambda a: np.sqrt(_norm(a)),
    OperatorKind.SIGNUM: lambda a: a * (1.0 / np.sqrt(_norm(a))),
    OperatorKind.INVERSE: _inverse,
    # the result class keeps only the blades it declares
    OperatorKind.INTO: lambda a, b: a,
    OperatorKind.ADD: lambda a, b: a + b,
    OperatorKind.SUB: lambda a, b: a - b,
    OperatorKind.GEOMETRIC_PRODUCT: lambda a, b: a * b,
    OperatorKind.OUTER_PRODUCT: lambda a, b: a ^ b,
    OperatorKind.LEFT_CONTRACTION: lambda a, b: a << b,
    OperatorKind.SCALAR_PRODUCT: lambda a, b: (a * b)(0),
    OperatorKind.GEOMETRIC_QUOTIENT: lambda a, b: a * _inverse(b),
    OperatorKind.SCALE: lambda a, b: a * b,
    OperatorKind.TRANSFORMATION: lambda a, b: a * b * ~a,
}


class CliffordBasis:
    """clifford multivectors for every blade mask of an algebra."""

    def __init__(self, algebra):
        self.algebra = algebra
        self.layout, _ = clifford.Cl(sig=list(algebra.squares), firstIdx=0)
        vectors = self.layout.blades_list[1:algebra.n + 1]

        self.blades = {}
        self.index = {}
        for mask in algebra.blades:
            mv = self.layout.scalar
            for i in positions(mask):
                mv = mv ^ vectors[i]
            nz = np.flatnonzero(np.abs(mv.value) > 1e-12)
            self.blades[mask] = mv
            self.index[mask] = int(nz[0]) if len(nz) else 0

    def coefficient(self, mv, mask:int) -> float:

        i = self.index[mask]
        return float(mv.value[i] / self.blades[mask].value[i])

    def multivector(self, cls, values):

        mv = self.layout.scalar * 0.0
        for c, v in zip(cls.components, values):
            mv = mv + (v * c.sign) * self.blades[c.blade]
        return mv


def table_mismatches(algebra, kinds=(ProductKind.GEOMETRIC, ProductKind.OUTER, ProductKind.LEFT_CONTRACTION)):
    """Every ``(kind, a, b, ours, clifford's)`` where the tables disagree."""
    basis = CliffordBasis(algebra)
    out = []
    for kind in kinds:
        op = CLIFFORD_PRODUCTS[kind]
        for a in algebra.blades:
            for b in algebra.blades:
                r, c = algebra.product(kind, a, b)
                theirs = op(basis.blades[a], basis.blades[b])
                expected = basis.coefficient(theirs, r)
                if not np.isclose(expected, c):
                    out.append((kind, a, b, c, expected))
    return out


def sanity_check(algebra):
    """Raise :class:`AlgebraError` if the table disagrees with clifford."""
    if algebra.n > MAX_CHECKED_GENERATORS:
        logger.info("%s: %d generators, skipping the clifford cross-check", algebra.name, algebra.n)
        return
    mismatches = table_mismatches(algebra)
    if mismatches:
        kind, a, b, ours, theirs = mismatches[0]
        raise AlgebraError(
            f"{algebra.name}: {kind.value} {mask_to_name(a)} {mask_to_name(b)} gives {ours}, "
            f"clifford gives {theirs} ({len(mismatches)} mismatches)")
    logger.debug("%s: table agrees with clifford", algebra.name)


def random_values(cls, rng, scale=2.0):

    return [rng.uniform(-scale, scale) for _ in cls.components]


def operation_error(algebra, operation, samples=8, seed=1) -> float:
    """
    Largest absolute difference between the operation's compiled formulas
    and clifford on random operands.
    """
    if operation.kind not in CLIFFORD_OPERATORS:
        raise ValueError(f"no clifford reference for {operation.kind.value}")
    basis = CliffordBasis(algebra)
    op = CLIFFORD_OPERATORS[operation.kind]
    rng = random.Random(seed)
    worst = 0.0

    for _ in range(samples):
        operand_values = [random_values(cls, rng) for cls in operation.operands]
        values = {(i, slot): v
                  for i, vs in enumerate(operand_values) for slot, v in enumerate(vs)}
        mvs = [basis.multivector(cls, vs) for cls, vs in zip(operation.operands, operand_values)]
        expected = op(*mvs)
        if not hasattr(expected, 'value'):
            expected = basis.layout.scalar * float(expected)
        for c, expr in zip(operation.result.components, operation.components):
            got = evaluate(expr, values, operation.arena)
            want = basis.coefficient(expected, c.blade) * c.sign
            worst = max(worst, abs(got - want))
    return worst
