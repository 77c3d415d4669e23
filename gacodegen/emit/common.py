"""
Naming and scalar-expression helpers shared by both backends.
"""

from gacodegen.algebra import mask_to_name
from gacodegen.errors import EmitError
from gacodegen.expression import LaneRef, Literal, Product, Reciprocal, Shared, Sqrt, Sum

INDENT = "    "


def camel_to_snake(name: str) -> str:
    """``ComplexNumber`` -> ``complex_number``; every capital starts a word."""
    out = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0:
            out.append("_")
        out.append(ch.lower())
    return "".join(out)

def element_name(component) -> str:
    """Parameter name of a class component: ``scalar``, ``e01`` or ``_e023``."""
    if component.blade == 0:
        return "scalar" if component.sign > 0 else "_scalar"
    return ("_" if component.sign < 0 else "") + mask_to_name(component.blade)

def symbol(kind, operands) -> str:
    """Deterministic symbol for an operation: operand classes, then operator."""
    parts = [camel_to_snake(c.name) for c in operands]
    parts.append(camel_to_snake(kind.value))
    return "_".join(parts)

def function_name(operation) -> str:

    return symbol(operation.kind, operation.operands)

def float_literal(value) -> str:

    value = float(value)
    return f"{value:.1f}" if value == int(value) else repr(value)

def header(descriptor_text: str, comment: str = "//"):

    return [f"{comment} Generated by gacodegen from `{descriptor_text}`. Do not edit."]


def lane_reference(operation, ref: LaneRef, names, scalar_access, group_access, lane_access) -> str:
    """Text for one scalar read of an operand, given the backend's accessors."""
    layout = operation.layouts[0][ref.operand]
    name = names[ref.operand]
    if layout.cls.is_scalar:
        return scalar_access(name)
    if layout.width == 1:
        return group_access(name, ref.group)
    return lane_access(name, ref.group, ref.lane)


def _factor_text(expr, leaf, sqrt, divisor=False) -> str:

    text = scalar_expression(expr, leaf, sqrt)
    if isinstance(expr, Sum) or (divisor and isinstance(expr, (Product, Reciprocal))):
        return f"({text})"
    return text


def _signed(expr, leaf, sqrt):

    if isinstance(expr, Product):
        parts = []
        divisors = []
        for f in expr.factors:
            if isinstance(f, Reciprocal):
                divisors.append(_factor_text(f.value, leaf, sqrt, divisor=True))
            else:
                parts.append(_factor_text(f, leaf, sqrt))
        if abs(expr.coefficient) != 1 or not parts:
            parts.insert(0, float_literal(abs(expr.coefficient)))
        text = " * ".join(parts) + "".join(f" / {d}" for d in divisors)
        return (-1 if expr.coefficient < 0 else 1), text
    if isinstance(expr, Literal):
        return (-1 if expr.value < 0 else 1), float_literal(abs(expr.value))
    return 1, scalar_expression(expr, leaf, sqrt)


def scalar_expression(expr, leaf, sqrt="sqrt({x})") -> str:
    """Infix text of a scalar expression; ``leaf`` renders LaneRef nodes.

    ``sqrt`` is the backend's square root template.
    """
    if isinstance(expr, LaneRef):
        return leaf(expr)
    if isinstance(expr, Shared):
        return f"s{expr.index}"
    if isinstance(expr, Literal):
        return float_literal(expr.value)
    if isinstance(expr, Sqrt):
        return sqrt.format(x=scalar_expression(expr.value, leaf, sqrt))
    if isinstance(expr, Reciprocal):
        return f"1.0 / {_factor_text(expr.value, leaf, sqrt, divisor=True)}"
    if isinstance(expr, Product):
        sign, text = _signed(expr, leaf, sqrt)
        return ("-" if sign < 0 else "") + text
    if isinstance(expr, Sum):
        out = ""
        for i, t in enumerate(expr.terms):
            sign, text = _signed(t, leaf, sqrt)
            if i == 0:
                out = ("-" if sign < 0 else "") + text
            else:
                out += (" - " if sign < 0 else " + ") + text
        return out
    raise EmitError(f"cannot emit {type(expr).__name__} as a scalar expression")
