"""
Compile operators over multivector classes into per-component expressions.

Every operator is a member of the closed :class:`OperatorKind` set and is
dispatched exhaustively in :func:`_evaluate`. Intermediate values are kept as
``{blade: [(coefficient, factors), ...]}`` with terms in generation order:
left blade ascending, then right blade ascending.
"""

import enum

from gacodegen.algebra import ProductKind, mask_to_name
from gacodegen.errors import CompileError
from gacodegen.expression import (
    ComponentRef, Construct, Literal, Product, Reciprocal, Sqrt, Sum, expand,
)
from gacodegen.log import get_logger

logger = get_logger(__name__)


class OperatorKind(enum.Enum):
    ZERO = 'Zero'
    ONE = 'One'
    NEG = 'Neg'
    AUTOMORPHISM = 'Automorphism'
    REVERSAL = 'Reversal'
    CONJUGATION = 'Conjugation'
    DUAL = 'Dual'
    SQUARED_MAGNITUDE = 'SquaredMagnitude'
    MAGNITUDE = 'Magnitude'
    SIGNUM = 'Signum'
    INVERSE = 'Inverse'
    POWI = 'Powi'
    INTO = 'Into'
    ADD = 'Add'
    SUB = 'Sub'
    MUL = 'Mul'
    DIV = 'Div'
    GEOMETRIC_PRODUCT = 'GeometricProduct'
    REGRESSIVE_PRODUCT = 'RegressiveProduct'
    OUTER_PRODUCT = 'OuterProduct'
    INNER_PRODUCT = 'InnerProduct'
    LEFT_CONTRACTION = 'LeftContraction'
    RIGHT_CONTRACTION = 'RightContraction'
    SCALAR_PRODUCT = 'ScalarProduct'
    GEOMETRIC_QUOTIENT = 'GeometricQuotient'
    SCALE = 'Scale'
    TRANSFORMATION = 'Transformation'

    @property
    def arity(self) -> int:
        return 1 if self in UNARY else 2

    @property
    def parameters(self) -> int:
        """Operands the generated code reads: none for constants, the source only for Into."""
        if self in CONSTANTS:
            return 0
        if self is OperatorKind.INTO:
            return 1
        return self.arity

    @property
    def composite(self) -> bool:
        """Built from calls to other generated operations instead of a formula."""
        return self is OperatorKind.POWI


UNARY = frozenset([
    OperatorKind.ZERO,
    OperatorKind.ONE,
    OperatorKind.NEG,
    OperatorKind.AUTOMORPHISM,
    OperatorKind.REVERSAL,
    OperatorKind.CONJUGATION,
    OperatorKind.DUAL,
    OperatorKind.SQUARED_MAGNITUDE,
    OperatorKind.MAGNITUDE,
    OperatorKind.SIGNUM,
    OperatorKind.INVERSE,
    OperatorKind.POWI,
])

CONSTANTS = frozenset([OperatorKind.ZERO, OperatorKind.ONE])

# operand that is the result class, for operators that do not select one
FIXED_RESULT = {
    OperatorKind.ZERO: 0,
    OperatorKind.ONE: 0,
    OperatorKind.POWI: 0,
    OperatorKind.INTO: 1,
}

INVOLUTIONS = {
    OperatorKind.NEG: 'Neg',
    OperatorKind.AUTOMORPHISM: 'Automorphism',
    OperatorKind.REVERSAL: 'Reversal',
    OperatorKind.CONJUGATION: 'Conjugation',
}

PRODUCTS = {
    OperatorKind.GEOMETRIC_PRODUCT: ProductKind.GEOMETRIC,
    OperatorKind.REGRESSIVE_PRODUCT: ProductKind.REGRESSIVE,
    OperatorKind.OUTER_PRODUCT: ProductKind.OUTER,
    OperatorKind.INNER_PRODUCT: ProductKind.INNER,
    OperatorKind.LEFT_CONTRACTION: ProductKind.LEFT_CONTRACTION,
    OperatorKind.RIGHT_CONTRACTION: ProductKind.RIGHT_CONTRACTION,
    OperatorKind.SCALAR_PRODUCT: ProductKind.SCALAR,
}


def pair_name(kind, operands) -> str:

    return f"{'x'.join(c.name for c in operands)} {kind.value}"


class Operation:
    """One operator applied to a tuple of operand classes.

    Built once by :func:`compile_operation`, then rewritten in place by the
    optimizer and the legalizer. Composite operators carry no components.
    """

    def __init__(self, kind, operands, result, components, arena=None):
        self.kind = kind
        self.operands = tuple(operands)
        self.result = result
        self.components = list(components)
        self.arena = list(arena or [])

        # filled in by the legalizer
        self.layouts = None
        self.lane_width = None
        self.vectorized = False
        self.lowered = None

    def __repr__(self):
        return f"Operation({self.pair} -> {self.result.name})"

    @property
    def pair(self) -> str:
        return pair_name(self.kind, self.operands)

    def expression(self) -> Construct:

        return Construct(self.result.name, tuple(self.components))


def _operand(cls, index: int):

    out = {}
    for slot, c in sorted(enumerate(cls.components), key=lambda sc: sc[1].blade):
        out[c.blade] = [(c.sign, (ComponentRef(index, cls.name, slot),))]
    return out

def _accumulate(out, blade: int, coefficient: int, factors):

    out.setdefault(blade, []).append((coefficient, factors))

def _bilinear(algebra, kind, left, right):

    out = {}
    for a in sorted(left):
        for b in sorted(right):
            r, c = algebra.product(kind, a, b)
            if c == 0:
                continue
            for ca, fa in left[a]:
                for cb, fb in right[b]:
                    _accumulate(out, r, c * ca * cb, fa + fb)
    return out

def _involution(algebra, name: str, mv):

    return {b: [(algebra.involution(name, b) * c, f) for c, f in terms]
            for b, terms in mv.items()}

def _dual(algebra, mv):

    out = {}
    for b in sorted(mv):
        r, s = algebra.dual(b)
        for c, f in mv[b]:
            _accumulate(out, r, s * c, f)
    return out

def _element_wise(left, right, sign: int):

    out = {}
    for b in sorted(set(left) | set(right)):
        for c, f in left.get(b, ()):
            _accumulate(out, b, c, f)
        for c, f in right.get(b, ()):
            _accumulate(out, b, sign * c, f)
    return out

def _slot_wise(cls, divide: bool):
    """Slot by slot product or quotient of two values of one class."""
    out = {}
    for slot, c in sorted(enumerate(cls.components), key=lambda sc: sc[1].blade):
        a = ComponentRef(0, cls.name, slot)
        b = ComponentRef(1, cls.name, slot)
        # the result sign is applied again by compile_operation, leaving a * b
        _accumulate(out, c.blade, c.sign, (a, Reciprocal(b) if divide else b))
    return out

def _nested(mv):
    """Collapse each blade's terms into a single Sum factor."""
    return {b: [(1, (Sum(tuple(Product(c, f) for c, f in terms)),))]
            for b, terms in mv.items()}

def _scaled(mv, factor):

    return {b: [(c, f + (factor,)) for c, f in terms] for b, terms in mv.items()}

def _norm(algebra, mv):
    """Squared magnitude of ``mv`` as one Sum, or None when it is identically zero."""
    terms = _bilinear(algebra, ProductKind.SCALAR, mv, _involution(algebra, 'Reversal', mv)).get(0, [])
    if not _nonzero(terms):
        return None
    return Sum(tuple(Product(c, f) for c, f in terms))

def _inverse(algebra, mv):
    """Reversal divided by the squared magnitude; empty when that is identically zero."""
    norm = _norm(algebra, mv)
    if norm is None:
        return {}
    return _scaled(_involution(algebra, 'Reversal', mv), Reciprocal(norm))


def _check_arity(kind, operands):

    if len(operands) != kind.arity:
        raise CompileError(kind.value, [c.name for c in operands],
                           f"expects {kind.arity} operand(s), got {len(operands)}")


def _evaluate(algebra, kind, operands):

    _check_arity(kind, operands)
    names = [c.name for c in operands]
    mvs = [_operand(cls, i) for i, cls in enumerate(operands)]

    if kind is OperatorKind.ZERO:
        return {}
    if kind is OperatorKind.ONE:
        return {0: [(1, ())]} if operands[0].slot_of(0) is not None else {}
    if kind in INVOLUTIONS:
        return _involution(algebra, INVOLUTIONS[kind], mvs[0])
    if kind is OperatorKind.DUAL:
        return _dual(algebra, mvs[0])
    if kind is OperatorKind.SQUARED_MAGNITUDE:
        return _bilinear(algebra, ProductKind.SCALAR, mvs[0], _involution(algebra, 'Reversal', mvs[0]))
    if kind is OperatorKind.MAGNITUDE:
        norm = _norm(algebra, mvs[0])
        return {} if norm is None else {0: [(1, (Sqrt(norm),))]}
    if kind is OperatorKind.SIGNUM:
        norm = _norm(algebra, mvs[0])
        return {} if norm is None else _scaled(mvs[0], Reciprocal(Sqrt(norm)))
    if kind is OperatorKind.INVERSE:
        return _inverse(algebra, mvs[0])
    if kind is OperatorKind.POWI:
        raise CompileError(kind.value, names, "has no closed form; it calls One, Inverse and GeometricProduct")
    if kind is OperatorKind.INTO:
        return {b: terms for b, terms in mvs[0].items() if operands[1].slot_of(b) is not None}
    if kind is OperatorKind.ADD:
        return _element_wise(mvs[0], mvs[1], 1)
    if kind is OperatorKind.SUB:
        return _element_wise(mvs[0], mvs[1], -1)
    if kind in (OperatorKind.MUL, OperatorKind.DIV):
        if operands[0] != operands[1]:
            raise CompileError(kind.value, names, "works slot by slot on two values of one class")
        return _slot_wise(operands[0], kind is OperatorKind.DIV)
    if kind in PRODUCTS:
        return _bilinear(algebra, PRODUCTS[kind], mvs[0], mvs[1])
    if kind is OperatorKind.GEOMETRIC_QUOTIENT:
        return _bilinear(algebra, ProductKind.GEOMETRIC, mvs[0], _inverse(algebra, mvs[1]))
    if kind is OperatorKind.SCALE:
        if not operands[1].is_scalar:
            raise CompileError(kind.value, names, f"scales by the scalar class, not {operands[1].name}")
        return _bilinear(algebra, ProductKind.GEOMETRIC, mvs[0], mvs[1])
    if kind is OperatorKind.TRANSFORMATION:
        # a * b * ~a, keeping a * b as shared intermediate sums
        ab = _bilinear(algebra, ProductKind.GEOMETRIC, mvs[0], mvs[1])
        return _bilinear(algebra, ProductKind.GEOMETRIC, _nested(ab),
                         _involution(algebra, 'Reversal', mvs[0]))
    raise CompileError(kind.value, names, "unknown operator")


def _nonzero(terms) -> bool:

    return bool(expand(Sum(tuple(Product(c, f) for c, f in terms))))

def result_signature(algebra, kind, operands) -> frozenset:
    """Blades that carry a nonzero coefficient in ``kind(*operands)``."""
    mv = _evaluate(algebra, kind, operands)
    return frozenset(b for b, terms in mv.items() if _nonzero(terms))


def _fixed_result(algebra, kind, operands):
    """Result class of an operator that names it, or None where it is undefined."""
    _check_arity(kind, operands)
    cls = operands[FIXED_RESULT[kind]]
    if kind is OperatorKind.ZERO:
        return cls
    if kind is OperatorKind.ONE:
        return cls if cls.slot_of(0) is not None else None
    if kind is OperatorKind.INTO:
        # a projection: the target drops some of the source's blades
        return cls if cls.signature < operands[0].signature else None
    if cls.slot_of(0) is None or _norm(algebra, _operand(cls, 0)) is None:
        return None
    if not result_signature(algebra, OperatorKind.GEOMETRIC_PRODUCT, (cls, cls)) <= cls.signature:
        return None
    return cls


def _listing(names) -> str:

    names = list(names)
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


def select_result_class(algebra, kind, operands, classes):
    """
    Pick the declared class an operation's result is stored in.

    Returns ``None`` when the operator is identically zero for these operands
    or no declared class can hold its result. The class whose blades are
    exactly the result's wins; with none, the one class that holds every
    result blade. Two or more candidates at either step is an ambiguity in
    the descriptor and raises :class:`CompileError` naming them all.
    """
    names = [c.name for c in operands]
    if kind in FIXED_RESULT:
        result = _fixed_result(algebra, kind, operands)
        if result is None:
            logger.debug("%s is not defined", pair_name(kind, operands))
        return result

    signature = result_signature(algebra, kind, operands)
    if not signature:
        logger.debug("%s is identically zero", pair_name(kind, operands))
        return None
    blades = ', '.join(mask_to_name(b) for b in sorted(signature))

    exact = [cls for cls in classes if cls.signature == signature]
    if len(exact) > 1:
        raise CompileError(kind.value, names,
                           f"result {{{blades}}} is declared by {_listing(c.name for c in exact)}")
    if exact:
        return exact[0]

    covering = [cls for cls in classes if signature <= cls.signature]
    if not covering:
        logger.debug("%s: no class holds %s", pair_name(kind, operands), blades)
        return None
    if len(covering) > 1:
        raise CompileError(kind.value, names,
                           f"result {{{blades}}} fits inside {_listing(c.name for c in covering)}")
    return covering[0]


def requirements(kind, operands):
    """Operations a composite operator's generated code calls; each returns its result class."""
    if kind is OperatorKind.POWI:
        a = operands[0]
        return [(OperatorKind.ONE, (a,)), (OperatorKind.INVERSE, (a,)),
                (OperatorKind.GEOMETRIC_PRODUCT, (a, a))]
    return []


def compile_operation(algebra, kind, operands, result) -> Operation:
    """Build one expression per component of the caller-supplied ``result`` class."""
    operands = tuple(operands)
    names = [c.name for c in operands]
    if kind.composite:
        _check_arity(kind, operands)
        if result != operands[0]:
            raise CompileError(kind.value, names, f"returns {operands[0].name}, not {result.name}")
        return Operation(kind, operands, result, [])

    mv = _evaluate(algebra, kind, operands)
    for blade, terms in sorted(mv.items()):
        if result.slot_of(blade) is None and _nonzero(terms):
            raise CompileError(kind.value, names,
                               f"{mask_to_name(blade)} is nonzero but not a component of {result.name}")

    components = []
    for c in result.components:
        terms = mv.get(c.blade, [])
        if not terms:
            components.append(Literal(0))
            continue
        components.append(Sum(tuple(Product(c.sign * coef, factors) for coef, factors in terms)))

    logger.debug("compiled %s -> %s", ' '.join([*names, kind.value]), result.name)
    return Operation(kind, operands, result, components)


def _pairs_with(kind, a, b) -> bool:

    if kind in (OperatorKind.MUL, OperatorKind.DIV):
        return a == b
    if kind is OperatorKind.INTO:
        return a != b
    if kind is OperatorKind.SCALE:
        return b.is_scalar
    return True


def plan(classes):
    """Every (operator, operands) combination worth generating, in emission order."""
    out = []
    for a in classes:
        for kind in OperatorKind:
            if kind.arity == 1 and not kind.composite and not a.is_scalar:
                out.append((kind, (a,)))
        for b in classes:
            if a.is_scalar and b.is_scalar:
                continue
            for kind in OperatorKind:
                if kind.arity == 2 and _pairs_with(kind, a, b):
                    out.append((kind, (a, b)))
    # composites call operations emitted above
    for a in classes:
        for kind in OperatorKind:
            if kind.composite and not a.is_scalar:
                out.append((kind, (a,)))
    return out
