"""
Lower optimized operations onto fixed-width lanes.

Each class is cut into consecutive lane groups of the target width. On the
vector path, every result group becomes one lane-wise expression whose
factors are whole operand groups, swizzles, gathers or broadcasts. Whatever
cannot be lowered that way is rewritten to per-component scalar expressions
over ``(group, lane)`` addresses instead.
"""

from gacodegen.errors import LegalizeError
from gacodegen.expression import (
    Broadcast, ComponentRef, Gather, GroupRef, LaneRef, Literal, Product,
    Sum, Swizzle, VectorLiteral, as_terms, is_flat, rewrite,
)
from gacodegen.log import get_logger

logger = get_logger(__name__)

# lane markers for vector terms
MISSING = 'missing'     # real result lane without this term: coefficient 0
PAD = 'pad'             # padding lane of the result group: never read back


class ClassLayout:
    """Lane groups of a class for one lane width.

    A single-component class is always one width-1 group. Otherwise groups
    hold up to ``width`` consecutive slots and never cross a lane group
    declared with ``|``; a group with fewer slots is padded.
    """

    def __init__(self, cls, width: int):
        self.cls = cls
        n = len(cls)
        self.width = 1 if n == 1 else width
        self.groups = []
        start = 0
        for size in cls.groups or (n,):
            for i in range(start, start + size, self.width):
                self.groups.append(list(range(i, min(i + self.width, start + size))))
            start += size
        self._positions = {}
        for g, slots in enumerate(self.groups):
            for lane, slot in enumerate(slots):
                self._positions[slot] = (g, lane)

    def __repr__(self):
        return f"ClassLayout({self.cls.name}, width={self.width}, groups={self.groups})"

    @property
    def padding(self) -> int:
        return len(self.groups) * self.width - len(self.cls)

    def position(self, slot: int):

        return self._positions[slot]

    def lane_ref(self, operand: int, slot: int) -> LaneRef:

        g, lane = self._positions[slot]
        return LaneRef(operand, g, lane)

    def real_lanes(self, group: int) -> int:

        return len(self.groups[group])


def _to_lanes(expr, layouts):

    def leaf(node):
        if isinstance(node, ComponentRef):
            return layouts[node.operand].lane_ref(node.operand, node.slot)
        return node
    return rewrite(expr, leaf)


def _lane_vector(sources, layouts, isa, width):
    """One factor of a vector term: per-lane LaneRef, MISSING or PAD."""
    defined = [s for s in sources if isinstance(s, LaneRef)]
    first = defined[0]

    if all(s == first for s in defined):
        return Broadcast(first)

    layout = layouts[first.operand]
    if layout.width == width and all(s.operand == first.operand and s.group == first.group for s in defined):
        real = layout.real_lanes(first.group)
        lanes = []
        for l, s in enumerate(sources):
            if isinstance(s, LaneRef):
                lanes.append(s.lane)
            elif s == PAD or l < real:
                lanes.append(l)
            else:
                lanes.append(first.lane)
        group = GroupRef(first.operand, first.group)
        if lanes == list(range(width)):
            return group
        if isa.shuffle is not None:
            return Swizzle(group, tuple(lanes))
        return Gather(tuple(LaneRef(first.operand, first.group, l) for l in lanes))

    return Gather(tuple(s if isinstance(s, LaneRef) else first for s in sources))


def _coefficient_term(coefficients, factors):

    defined = [c for c in coefficients if c is not None]
    fill = defined[0]
    values = [fill if c is None else c for c in coefficients]
    if all(v == values[0] for v in values):
        c = values[0]
        if c == 0:
            return None
        sign = 1 if c > 0 else -1
        if abs(c) != 1:
            factors = (Broadcast(Literal(abs(c))),) + factors
        elif not factors:
            factors = (Broadcast(Literal(1)),)
        return Product(sign, factors)
    return Product(1, (VectorLiteral(tuple(values)),) + factors)


def _vectorize_group(operation, slots, layouts, isa, width):

    lanes = []
    for l in range(width):
        if l < len(slots):
            terms = as_terms(operation.components[slots[l]])
            lanes.append([(c, tuple(_to_lanes(f, layouts) for f in factors))
                          for c, factors in terms if c != 0])
        else:
            lanes.append(None)

    buckets = sorted({len(f) for lane in lanes if lane for _, f in lane})
    out = []
    for m in buckets:
        per_lane = [None if lane is None else [t for t in lane if len(t[1]) == m] for lane in lanes]
        depth = max(len(ts) for ts in per_lane if ts is not None)
        for t in range(depth):
            coefficients = []
            sources = [[] for _ in range(m)]
            for ts in per_lane:
                if ts is None:
                    coefficients.append(None)
                    marker = PAD
                elif t < len(ts):
                    coefficients.append(ts[t][0])
                    marker = None
                else:
                    coefficients.append(0)
                    marker = MISSING
                for i in range(m):
                    sources[i].append(ts[t][1][i] if marker is None else marker)
            factors = tuple(_lane_vector(s, layouts, isa, width) for s in sources)
            term = _coefficient_term(coefficients, factors)
            if term is not None:
                out.append(term)

    if not out:
        return Broadcast(Literal(0))
    return Sum(tuple(out))


def _vectorize(operation, layouts, result_layout, isa):

    if operation.arena:
        raise LegalizeError(operation.kind.value, [c.name for c in operation.operands],
                            "shared subexpressions cannot be lowered lane-wise")
    for expr in operation.components:
        if not is_flat(expr):
            raise LegalizeError(operation.kind.value, [c.name for c in operation.operands],
                                "nested expression cannot be lowered lane-wise")
    return [_vectorize_group(operation, slots, layouts, isa, result_layout.width)
            for slots in result_layout.groups]


def legalize(operation, isa):
    """Attach lane layouts and lowered expressions to ``operation`` in place."""
    layouts = tuple(ClassLayout(c, isa.width) for c in operation.operands)
    result_layout = ClassLayout(operation.result, isa.width)
    operation.layouts = (layouts, result_layout)

    if operation.kind.composite:
        # the body only calls other operations
        operation.lowered = []
        operation.vectorized = False
        operation.lane_width = 1
        return operation

    if result_layout.width > 1:
        try:
            operation.lowered = _vectorize(operation, layouts, result_layout, isa)
            operation.vectorized = True
            operation.lane_width = result_layout.width
            return operation
        except LegalizeError as e:
            logger.info("%s; using scalar lanes for %s", e, isa.name)

    operation.arena = [_to_lanes(e, layouts) for e in operation.arena]
    operation.lowered = [_to_lanes(c, layouts) for c in operation.components]
    operation.vectorized = False
    operation.lane_width = 1
    return operation
