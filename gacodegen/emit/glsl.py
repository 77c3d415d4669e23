"""
GLSL backend: a struct of scalars per class and one plain function per
operation. GLSL has no operator overloading, so only the scalar path is used.
"""

from gacodegen.compiler import OperatorKind
from gacodegen.emit.common import (
    INDENT, function_name, header, lane_reference, scalar_expression, symbol,
)
from gacodegen.errors import EmitError

PARAMETERS = ("a", "b")

SQRT = "sqrt({x})"


def type_name(cls) -> str:

    return "float" if cls.is_scalar else cls.name


def emit_class(cls):

    if cls.is_scalar:
        return []
    return [
        f"struct {cls.name} {{",
        f"{INDENT}// {', '.join(cls.labels())}",
        f"{INDENT}float c[{len(cls)}];",
        "};",
        "",
    ]


def _leaf(operation):

    def leaf(ref):
        return lane_reference(
            operation, ref, PARAMETERS,
            scalar_access=lambda name: name,
            group_access=lambda name, g: f"{name}.c[{g}]",
            lane_access=lambda name, g, l: f"{name}.c[{g}]",
        )
    return leaf


def _powi_body(operation):

    cls = operation.result
    name = cls.name
    one = symbol(OperatorKind.ONE, (cls,))
    inverse = symbol(OperatorKind.INVERSE, (cls,))
    product = symbol(OperatorKind.GEOMETRIC_PRODUCT, (cls, cls))
    return [
        "if (exponent == 0) {",
        f"{INDENT}return {one}();",
        "}",
        f"{name} x = a;",
        "if (exponent < 0) {",
        f"{INDENT}x = {inverse}(a);",
        "}",
        f"{name} y = {one}();",
        "int n = abs(exponent);",
        "while (1 < n) {",
        f"{INDENT}if ((n & 1) == 1) {{",
        f"{INDENT * 2}y = {product}(x, y);",
        f"{INDENT}}}",
        f"{INDENT}x = {product}(x, x);",
        f"{INDENT}n = n >> 1;",
        "}",
        f"return {product}(x, y);",
    ]


def emit_operation(operation):

    if operation.vectorized or operation.lane_width != 1:
        raise EmitError(f"{operation.pair}: GLSL needs the scalar lane path")
    kind = operation.kind
    result = operation.result
    params = [f"{type_name(cls)} {PARAMETERS[i]}"
              for i, cls in enumerate(operation.operands[:kind.parameters])]
    if kind is OperatorKind.POWI:
        params.append("int exponent")

    lines = [f"{type_name(result)} {function_name(operation)}({', '.join(params)}) {{"]
    if kind.composite:
        lines.extend(f"{INDENT}{line}" for line in _powi_body(operation))
        lines.append("}")
        lines.append("")
        return lines

    leaf = _leaf(operation)
    for i, e in enumerate(operation.arena):
        lines.append(f"{INDENT}float s{i} = {scalar_expression(e, leaf, SQRT)};")
    values = [scalar_expression(c, leaf, SQRT) for c in operation.lowered]
    if result.is_scalar:
        lines.append(f"{INDENT}return {values[0]};")
    else:
        lines.append(f"{INDENT}return {result.name}(float[{len(result)}]({', '.join(values)}));")
    lines.append("}")
    lines.append("")
    return lines


def emit_module(descriptor_text, classes, operations, isa) -> str:

    if not isa.is_scalar:
        raise EmitError(f"the glsl backend has no {isa.name} lanes; use the scalar instruction set")
    seen = {}
    for operation in operations:
        name = function_name(operation)
        if name in seen:
            raise EmitError(f"{operation.pair} and {seen[name]} both emit a function named {name}")
        seen[name] = operation.pair

    lines = header(descriptor_text)
    lines.append("")
    for cls in classes:
        lines.extend(emit_class(cls))
    for operation in operations:
        lines.extend(emit_operation(operation))
    return "\n".join(lines).rstrip("\n") + "\n"
