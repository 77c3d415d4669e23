"""
Blade set and multiplication table of a Clifford algebra, derived from the
squares of its generators.

Blades are bitmasks over the generators, enumerated in binary subset order.
The table is read-only once built and may be shared by every compilation
that targets the same algebra.
"""

import enum
from typing import NamedTuple, Sequence

from gacodegen.errors import AlgebraError

MAX_GENERATORS = 16

# 4^8 = 65536 entries; above that, signs are computed on demand
EAGER_TABLE_LIMIT = 8


class ProductKind(enum.Enum):
    GEOMETRIC = 'gp'
    OUTER = 'wedge'
    INNER = 'inner'
    LEFT_CONTRACTION = 'lcont'
    RIGHT_CONTRACTION = 'rcont'
    SCALAR = 'scalar'
    REGRESSIVE = 'regressive'


def positions(mask:int):

    return [i for i in range(MAX_GENERATORS) if (mask >> i) & 1]

def grade(mask:int) -> int:

    return bin(mask).count("1")

def mask_to_name(mask:int) -> str:

    if mask == 0: return "1"
    return "e" + "".join("%X" % i for i in positions(mask))

def reorder_sign(mask_a:int, mask_b:int) -> int:
    """
    Sign of the permutation that sorts the generators of A followed by
    the generators of B into ascending index order.
    """
    swaps = 0
    a = mask_a >> 1
    while a:
        swaps += grade(a & mask_b)
        a >>= 1
    return -1 if swaps & 1 else 1

def parse_blade(label: str, generator_count: int):
    """
    Parse a blade label such as ``1``, ``e023`` or ``-e13`` into
    ``(mask, sign)``. Generator digits are hex; listing them out of order
    folds the reordering sign into the returned sign.
    """
    sign = 1
    name = label.strip()
    if name.startswith('-'):
        sign = -1
        name = name[1:]
    if name == '1':
        return 0, sign
    if len(name) < 2 or name[0] != 'e':
        raise ValueError(f"bad blade label {label!r}")

    mask = 0
    for ch in name[1:]:
        try:
            idx = int(ch, 16)
        except ValueError:
            raise ValueError(f"bad generator digit {ch!r} in {label!r}") from None
        if idx >= generator_count:
            raise ValueError(f"generator e{ch} does not exist in a {generator_count}-generator algebra")
        bit = 1 << idx
        if mask & bit:
            raise ValueError(f"generator e{ch} repeated in {label!r}")
        sign *= reorder_sign(mask, bit)
        mask |= bit
    return mask, sign


def _grade_filter(kind, ga:int, gb:int, gr:int) -> bool:

    if kind is ProductKind.GEOMETRIC:
        return True
    if kind is ProductKind.OUTER:
        return gr == ga + gb
    if kind is ProductKind.INNER:
        return gr == abs(ga - gb)
    if kind is ProductKind.LEFT_CONTRACTION:
        return gr == gb - ga
    if kind is ProductKind.RIGHT_CONTRACTION:
        return gr == ga - gb
    if kind is ProductKind.SCALAR:
        return gr == 0
    raise ValueError(f"no grade filter for {kind}")


# Per-grade sign of the basis involutions.
INVOLUTIONS = {
    'Neg': lambda g: -1,
    'Automorphism': lambda g: -1 if g % 2 == 1 else 1,
    'Reversal': lambda g: -1 if g % 4 >= 2 else 1,
    'Conjugation': lambda g: -1 if (g + 3) % 4 < 2 else 1,
}


class Algebra:
    """A Clifford algebra fixed by the squares of its generators.

    Attributes:
        name (str): Algebra name, used for output file names.
        squares (tuple): Square of each generator, each in {-1, 0, 1}.
        n (int): Generator count.
        size (int): Number of blades (2^n).
        top (int): Mask of the pseudoscalar.
        blades (tuple): Blade masks in binary subset order.
    """

    def __init__(self, squares: Sequence[int], name: str = 'algebra'):
        squares = tuple(squares)
        if not 1 <= len(squares) <= MAX_GENERATORS:
            raise AlgebraError(
                f"{name}: {len(squares)} generators, expected between 1 and {MAX_GENERATORS}")
        for i, s in enumerate(squares):
            if isinstance(s, bool) or s not in (-1, 0, 1):
                raise AlgebraError(f"{name}: e{i:X} squares to {s!r}, expected -1, 0 or 1")

        self.name = name
        self.squares = squares
        self.n = len(squares)
        self.size = 1 << self.n
        self.top = self.size - 1
        self.blades = tuple(range(self.size))

        self._null = sum(1 << i for i, s in enumerate(squares) if s == 0)
        self._negative = sum(1 << i for i, s in enumerate(squares) if s == -1)
        self._signs = self._build_sign_table() if self.n <= EAGER_TABLE_LIMIT else None

    def __repr__(self):
        return f"Algebra({self.name!r}, {list(self.squares)})"

    def _geometric_sign(self, a:int, b:int) -> int:

        shared = a & b
        if shared & self._null:
            return 0
        sign = reorder_sign(a, b)
        if grade(shared & self._negative) & 1:
            sign = -sign
        return sign

    def _build_sign_table(self):

        size = self.size
        return tuple(self._geometric_sign(a, b) for a in range(size) for b in range(size))

    def geometric(self, a:int, b:int):
        """Geometric product of two blades as ``(result_mask, coefficient)``."""
        if self._signs is not None:
            return a ^ b, self._signs[a * self.size + b]
        return a ^ b, self._geometric_sign(a, b)

    def dual(self, a:int):
        """Complement of ``a`` with respect to the pseudoscalar, and its sign."""
        c = self.top ^ a
        return c, reorder_sign(a, c)

    def product(self, kind, a:int, b:int):
        """Product ``kind`` of blades ``a`` and ``b`` as ``(result_mask, coefficient)``."""
        if kind is ProductKind.REGRESSIVE:
            return self._regressive(a, b)
        r, c = self.geometric(a, b)
        if c and not _grade_filter(kind, grade(a), grade(b), grade(r)):
            c = 0
        return r, c

    def _regressive(self, a:int, b:int):

        # a and b are duals of pa and pb; a v b is the dual of pa ^ pb
        pa, pb = self.top ^ a, self.top ^ b
        if pa & pb:
            return self.top ^ (pa ^ pb), 0
        pr = pa ^ pb
        r, sr = self.dual(pr)
        coefficient = reorder_sign(pa, pb) * sr * self.dual(pa)[1] * self.dual(pb)[1]
        return r, coefficient

    def involution(self, name: str, a:int) -> int:

        return INVOLUTIONS[name](grade(a))

    def cayley_table(self, kind=ProductKind.GEOMETRIC):
        """Rows of ``(result_mask, coefficient)`` for every blade pair."""
        return [[self.product(kind, a, b) for b in self.blades] for a in self.blades]


class Component(NamedTuple):
    blade: int
    sign: int


class MultivectorClass:
    """A named, ordered selection of signed blades.

    The sign of each component is fixed when the class is declared: a slot
    holding value ``x`` stands for ``x * sign * blade``. ``groups`` lists the
    sizes of explicitly declared lane groups, or is None when the layout is
    left to the lane width.
    """

    def __init__(self, name: str, components, groups=None):
        components = tuple(Component(int(b), int(s)) for b, s in components)
        if not components:
            raise AlgebraError(f"class {name} has no components")
        seen = set()
        for c in components:
            if c.blade in seen:
                raise AlgebraError(f"class {name} lists {mask_to_name(c.blade)} twice")
            if c.sign not in (-1, 1):
                raise AlgebraError(f"class {name}: component sign must be +1 or -1")
            seen.add(c.blade)
        if groups is not None:
            groups = tuple(int(g) for g in groups)
            if any(g < 1 for g in groups) or sum(groups) != len(components):
                raise AlgebraError(f"class {name}: lane groups {list(groups)} do not cover "
                                   f"its {len(components)} components")
        self.name = name
        self.components = components
        self.groups = groups
        self._slots = {c.blade: i for i, c in enumerate(components)}

    def __repr__(self):
        return f"MultivectorClass({self.name!r}, {self.labels()})"

    def __len__(self):
        return len(self.components)

    def __eq__(self, other):
        return (isinstance(other, MultivectorClass) and self.name == other.name
                and self.components == other.components and self.groups == other.groups)

    def __hash__(self):
        return hash((self.name, self.components, self.groups))

    @property
    def blades(self):
        return tuple(c.blade for c in self.components)

    @property
    def signature(self) -> frozenset:
        return frozenset(self._slots)

    @property
    def is_scalar(self) -> bool:
        return self.components == (Component(0, 1),)

    def slot_of(self, blade:int):

        return self._slots.get(blade)

    def labels(self):

        return [('-' if c.sign < 0 else '') + mask_to_name(c.blade) for c in self.components]
