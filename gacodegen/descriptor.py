"""
Parse algebra descriptors of the form

    algebra_name:squares;Class1:components;Class2:components;...

e.g. ``epga1d:1,1;Scalar:1;ComplexNumber:1,e01``. A ``|`` inside a class's
component list declares a lane group boundary, as in
``Motor:1,e23,-e13,e12|e0,e023,e013,e012``.
"""

from typing import List, NamedTuple, Tuple

from gacodegen.algebra import MAX_GENERATORS, Algebra, MultivectorClass, parse_blade
from gacodegen.compiler import OperatorKind
from gacodegen.emit.common import camel_to_snake
from gacodegen.errors import AlgebraError, DescriptorError

# Names the generated code already uses for traits, types or keywords.
RESERVED_NAMES = frozenset(
    [kind.value for kind in OperatorKind]
    + ['Self', 'Clone', 'Copy', 'Debug', 'From', 'Sized', 'f32', 'i32']
    + ['as', 'break', 'const', 'continue', 'crate', 'else', 'enum', 'fn', 'for', 'if',
       'impl', 'in', 'let', 'loop', 'match', 'mod', 'move', 'mut', 'pub', 'ref', 'return',
       'self', 'static', 'struct', 'super', 'trait', 'type', 'unsafe', 'use', 'where', 'while']
    + ['bool', 'float', 'int', 'uint', 'void', 'vec2', 'vec3', 'vec4', 'mat2', 'mat3', 'mat4']
)


class Descriptor(NamedTuple):
    text: str
    name: str
    squares: Tuple[int, ...]
    # (class name, lane groups of component labels)
    classes: List[Tuple[str, List[List[str]]]]


def parse_descriptor(text: str) -> Descriptor:

    clauses = [c.strip() for c in text.strip().split(';')]
    head = clauses[0]
    if head.count(':') != 1:
        raise DescriptorError(head, "expected 'algebra_name:squares'")
    name, squares_text = (part.strip() for part in head.split(':'))
    if not name:
        raise DescriptorError(head, "missing algebra name")

    try:
        squares = tuple(int(s) for s in squares_text.split(','))
    except ValueError:
        raise DescriptorError(head, f"unparseable generator squares {squares_text!r}") from None
    if not 1 <= len(squares) <= MAX_GENERATORS:
        raise DescriptorError(head, f"{len(squares)} generators, expected between 1 and {MAX_GENERATORS}")
    bad = [s for s in squares if s not in (-1, 0, 1)]
    if bad:
        raise DescriptorError(head, f"generator squares must be -1, 0 or 1, got {bad[0]}")

    classes = []
    names = set()
    snake_names = {}
    for clause in clauses[1:]:
        if not clause:
            continue
        if clause.count(':') != 1:
            raise DescriptorError(clause, "expected 'ClassName:components'")
        class_name, components_text = (part.strip() for part in clause.split(':'))
        if not class_name.isidentifier():
            raise DescriptorError(clause, f"class name {class_name!r} is not an identifier")
        if class_name in RESERVED_NAMES:
            raise DescriptorError(clause, f"class name {class_name} is reserved by the generated code")
        if class_name in names:
            raise DescriptorError(clause, f"class {class_name} declared twice")
        snake = camel_to_snake(class_name)
        if snake in snake_names:
            raise DescriptorError(clause, f"class {class_name} and class {snake_names[snake]} "
                                          f"both become {snake} in function names")
        groups = [[label.strip() for label in group.split(',')] for group in components_text.split('|')]
        if not all(all(group) for group in groups):
            raise DescriptorError(clause, "empty component")
        classes.append((class_name, groups))
        names.add(class_name)
        snake_names[snake] = class_name

    return Descriptor(text, name, squares, classes)


def build(descriptor: Descriptor):
    """Build the algebra and its classes, validating every blade label."""
    try:
        algebra = Algebra(descriptor.squares, name=descriptor.name)
    except AlgebraError as e:
        raise DescriptorError(descriptor.text.split(';')[0], str(e)) from e

    classes = []
    for class_name, groups in descriptor.classes:
        clause = f"{class_name}:{'|'.join(','.join(group) for group in groups)}"
        components = []
        seen = {}
        for label in (label for group in groups for label in group):
            try:
                mask, sign = parse_blade(label, algebra.n)
            except ValueError as e:
                raise DescriptorError(clause, str(e)) from None
            if mask in seen:
                raise DescriptorError(clause, f"component {label} duplicates {seen[mask]}")
            seen[mask] = label
            components.append((mask, sign))
        sizes = [len(group) for group in groups] if len(groups) > 1 else None
        classes.append(MultivectorClass(class_name, components, groups=sizes))
    return algebra, classes
