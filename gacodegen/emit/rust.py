"""
Rust backend: one struct per class, one trait impl per operation.

Vectorized operations use the intrinsic templates of the selected
:class:`~gacodegen.isa.InstructionSet`; scalar-path operations read lanes
through the ``lane`` helper and rebuild the result with ``new``.
"""

from gacodegen.compiler import OperatorKind
from gacodegen.emit.common import (
    INDENT, camel_to_snake, element_name, float_literal, header, lane_reference,
    scalar_expression,
)
from gacodegen.errors import EmitError
from gacodegen.expression import (
    Broadcast, Gather, GroupRef, LaneRef, Literal, Product, Sum, Swizzle, VectorLiteral,
)
from gacodegen.legalizer import ClassLayout

STD_OPS = {
    OperatorKind.ADD: 'Add',
    OperatorKind.SUB: 'Sub',
    OperatorKind.NEG: 'Neg',
    OperatorKind.MUL: 'Mul',
    OperatorKind.DIV: 'Div',
    OperatorKind.INTO: 'Into',
}

PARAMETERS = ("self", "other")

SQRT = "f32::sqrt({x})"


def type_name(cls) -> str:

    return "f32" if cls.is_scalar else cls.name

def _group_type(layout, isa) -> str:

    return "f32" if layout.width == 1 else isa.vector_type


def emit_preamble(descriptor_text, isa):

    lines = header(descriptor_text)
    lines.append(f"// Instruction set: {isa.name}")
    lines.append("#![allow(clippy::all, non_snake_case, unused_imports, unused_unsafe, dead_code)]")
    lines.append("")
    if not isa.is_scalar:
        cfg = f'target_arch = "{isa.arch}"'
        if isa.feature:
            cfg = f'all({cfg}, target_feature = "{isa.feature}")'
        lines.append(f"#[cfg({cfg})]")
        lines.append(f"use std::arch::{isa.arch}::*;")
    lines.append("use std::ops::{Add, Div, Mul, Neg, Sub};")
    lines.append("")

    for kind in OperatorKind:
        if kind in STD_OPS:
            continue
        method = camel_to_snake(kind.value)
        if kind.parameters == 0:
            lines.append(f"pub trait {kind.value} {{")
            lines.append(f"{INDENT}fn {method}() -> Self;")
        elif kind is OperatorKind.POWI:
            lines.append(f"pub trait {kind.value} {{")
            lines.append(f"{INDENT}type Output;")
            lines.append(f"{INDENT}fn {method}(self, exponent: i32) -> Self::Output;")
        elif kind.arity == 1:
            lines.append(f"pub trait {kind.value} {{")
            lines.append(f"{INDENT}type Output;")
            lines.append(f"{INDENT}fn {method}(self) -> Self::Output;")
        else:
            lines.append(f"pub trait {kind.value}<T> {{")
            lines.append(f"{INDENT}type Output;")
            lines.append(f"{INDENT}fn {method}(self, other: T) -> Self::Output;")
        lines.append("}")
        lines.append("")

    if not isa.is_scalar:
        t = isa.vector_type
        lines.append("#[inline(always)]")
        lines.append(f"fn lane(v: {t}, i: usize) -> f32 {{")
        lines.append(f"{INDENT}unsafe {{ std::mem::transmute::<{t}, [f32; {isa.width}]>(v)[i] }}")
        lines.append("}")
        lines.append("")
    return lines


def emit_class(cls, isa):

    if cls.is_scalar:
        return []
    layout = ClassLayout(cls, isa.width)
    names = [element_name(c) for c in cls.components]
    lines = []

    lines.append(f"/// {', '.join(cls.labels())}")
    lines.append("#[derive(Clone, Copy)]")
    lines.append(f"pub struct {cls.name} {{")
    for g, slots in enumerate(layout.groups):
        lines.append(f"{INDENT}g{g}: {_group_type(layout, isa)},")
    lines.append("}")
    lines.append("")

    lines.append(f"impl {cls.name} {{")
    lines.append(f"{INDENT}#[allow(clippy::too_many_arguments)]")
    params = ", ".join(f"{n}: f32" for n in names)
    lines.append(f"{INDENT}pub fn new({params}) -> Self {{")
    fields = []
    for g, slots in enumerate(layout.groups):
        if layout.width == 1:
            fields.append(f"g{g}: {names[slots[0]]}")
        else:
            values = [names[s] for s in slots] + ["0.0"] * (layout.width - len(slots))
            fields.append(f"g{g}: {isa.load.format(values=', '.join(values))}")
    body = f"Self {{ {', '.join(fields)} }}"
    if layout.width > 1:
        body = f"unsafe {{ {body} }}"
    lines.append(f"{INDENT * 2}{body}")
    lines.append(f"{INDENT}}}")
    lines.append("")

    params = ", ".join(f"g{g}: {_group_type(layout, isa)}" for g in range(len(layout.groups)))
    lines.append(f"{INDENT}pub fn from_groups({params}) -> Self {{")
    lines.append(f"{INDENT * 2}Self {{ {', '.join(f'g{g}' for g in range(len(layout.groups)))} }}")
    lines.append(f"{INDENT}}}")

    for g in range(len(layout.groups)):
        lines.append("")
        lines.append(f"{INDENT}#[inline(always)]")
        lines.append(f"{INDENT}pub fn group{g}(&self) -> {_group_type(layout, isa)} {{")
        lines.append(f"{INDENT * 2}self.g{g}")
        lines.append(f"{INDENT}}}")

    lines.append("")
    elements = []
    for slot in range(len(cls)):
        g, lane = layout.position(slot)
        elements.append(f"self.g{g}" if layout.width == 1 else f"lane(self.g{g}, {lane})")
    lines.append(f"{INDENT}pub fn to_array(&self) -> [f32; {len(cls)}] {{")
    lines.append(f"{INDENT * 2}[{', '.join(elements)}]")
    lines.append(f"{INDENT}}}")
    lines.append("}")
    lines.append("")

    lines.append(f"impl std::fmt::Debug for {cls.name} {{")
    lines.append(f"{INDENT}fn fmt(&self, formatter: &mut std::fmt::Formatter) -> std::fmt::Result {{")
    lines.append(f"{INDENT * 2}let elements = self.to_array();")
    lines.append(f"{INDENT * 2}formatter")
    lines.append(f'{INDENT * 3}.debug_struct("{cls.name}")')
    for slot, label in enumerate(cls.labels()):
        lines.append(f'{INDENT * 3}.field("{label}", &elements[{slot}])')
    lines.append(f"{INDENT * 3}.finish()")
    lines.append(f"{INDENT}}}")
    lines.append("}")
    lines.append("")
    return lines


def _leaf(operation):

    def leaf(ref: LaneRef) -> str:
        return lane_reference(
            operation, ref, PARAMETERS,
            scalar_access=lambda name: name,
            group_access=lambda name, g: f"{name}.g{g}",
            lane_access=lambda name, g, l: f"lane({name}.g{g}, {l})",
        )
    return leaf


def _vector_expression(expr, operation, isa) -> str:

    leaf = _leaf(operation)
    if isinstance(expr, GroupRef):
        return f"{PARAMETERS[expr.operand]}.g{expr.group}"
    if isinstance(expr, Broadcast):
        if isinstance(expr.value, Literal):
            return isa.splat.format(x=float_literal(expr.value.value))
        return isa.splat.format(x=leaf(expr.value))
    if isinstance(expr, Swizzle):
        v = _vector_expression(expr.source, operation, isa)
        imm = sum(l << (2 * i) for i, l in enumerate(expr.lanes))
        return isa.shuffle.format(v=v, imm=imm, lanes=", ".join(str(l) for l in expr.lanes))
    if isinstance(expr, Gather):
        return isa.load.format(values=", ".join(leaf(s) for s in expr.sources))
    if isinstance(expr, VectorLiteral):
        return isa.load.format(values=", ".join(float_literal(v) for v in expr.values))
    if isinstance(expr, Product):
        out = None
        for f in expr.factors:
            text = _vector_expression(f, operation, isa)
            out = text if out is None else isa.mul.format(a=out, b=text)
        return isa.neg.format(a=out) if expr.coefficient < 0 else out
    if isinstance(expr, Sum):
        out = None
        for t in expr.terms:
            positive = Product(abs(t.coefficient), t.factors)
            text = _vector_expression(positive, operation, isa)
            if out is None:
                out = isa.neg.format(a=text) if t.coefficient < 0 else text
            elif t.coefficient < 0:
                out = isa.sub.format(a=out, b=text)
            else:
                out = isa.add.format(a=out, b=text)
        return out
    raise EmitError(f"{operation.pair}: cannot emit {type(expr).__name__} as a vector expression")


def _body(operation, isa):

    result = operation.result
    if operation.vectorized:
        groups = [_vector_expression(g, operation, isa) for g in operation.lowered]
        return ["unsafe {", f"{INDENT}{result.name}::from_groups({', '.join(groups)})", "}"]

    leaf = _leaf(operation)
    lines = [f"let s{i} = {scalar_expression(e, leaf, SQRT)};" for i, e in enumerate(operation.arena)]
    values = [scalar_expression(c, leaf, SQRT) for c in operation.lowered]
    if result.is_scalar:
        lines.append(values[0])
    else:
        lines.append(f"{result.name}::new({', '.join(values)})")
    return lines


def _powi_body(operation):
    """Exponentiation by squaring over the class's One, Inverse and GeometricProduct."""
    name = operation.result.name
    return [
        "if exponent == 0 {",
        f"{INDENT}return {name}::one();",
        "}",
        f"let mut x: {name} = if exponent < 0 {{ self.inverse() }} else {{ self }};",
        f"let mut y: {name} = {name}::one();",
        "let mut n: i32 = exponent.abs();",
        "while 1 < n {",
        f"{INDENT}if n & 1 == 1 {{",
        f"{INDENT * 2}y = x.geometric_product(y);",
        f"{INDENT}}}",
        f"{INDENT}x = x.geometric_product(x);",
        f"{INDENT}n >>= 1;",
        "}",
        "x.geometric_product(y)",
    ]


def emit_operation(operation, isa):

    kind = operation.kind
    trait = STD_OPS.get(kind, kind.value)
    method = camel_to_snake(trait)
    left = type_name(operation.operands[0])
    output = type_name(operation.result)

    lines = []
    typed = True
    if kind.parameters == 0:
        lines.append(f"impl {trait} for {left} {{")
        signature = f"fn {method}() -> Self {{"
        typed = False
    elif kind is OperatorKind.INTO:
        lines.append(f"impl {trait}<{output}> for {left} {{")
        signature = f"fn {method}(self) -> {output} {{"
        typed = False
    elif kind is OperatorKind.POWI:
        lines.append(f"impl {trait} for {left} {{")
        signature = f"fn {method}(self, exponent: i32) -> {output} {{"
    elif kind.arity == 1:
        lines.append(f"impl {trait} for {left} {{")
        signature = f"fn {method}(self) -> {output} {{"
    else:
        right = type_name(operation.operands[1])
        lines.append(f"impl {trait}<{right}> for {left} {{")
        signature = f"fn {method}(self, other: {right}) -> {output} {{"
    if typed:
        lines.append(f"{INDENT}type Output = {output};")
        lines.append("")
    lines.append(f"{INDENT}{signature}")
    body = _powi_body(operation) if kind.composite else _body(operation, isa)
    for line in body:
        lines.append(f"{INDENT * 2}{line}")
    lines.append(f"{INDENT}}}")
    lines.append("}")
    lines.append("")
    return lines


def emit_module(descriptor_text, classes, operations, isa) -> str:

    if operations and any(op.lane_width is None for op in operations):
        raise EmitError("operations must be legalized before emission")
    lines = emit_preamble(descriptor_text, isa)
    for cls in classes:
        lines.extend(emit_class(cls, isa))
    for operation in operations:
        lines.extend(emit_operation(operation, isa))
    return "\n".join(lines).rstrip("\n") + "\n"
