"""
Tests for operator compilation and result class selection.
"""

import pytest

from gacodegen.algebra import MultivectorClass
from gacodegen.compiler import (
    OperatorKind, compile_operation, plan, requirements, result_signature, select_result_class,
)
from gacodegen.descriptor import build, parse_descriptor
from gacodegen.errors import CompileError
from gacodegen.expression import ComponentRef, Literal, Sqrt, Sum, evaluate, expand
from gacodegen.optimizer import optimize


def _values(*operands):
    return {(i, slot): v for i, vs in enumerate(operands) for slot, v in enumerate(vs)}


def _built(text):
    algebra, classes = build(parse_descriptor(text))
    return algebra, {c.name: c for c in classes}


class TestOperatorKind:

    def test_arity(self):
        assert OperatorKind.NEG.arity == 1
        assert OperatorKind.SQUARED_MAGNITUDE.arity == 1
        assert OperatorKind.TRANSFORMATION.arity == 2
        assert OperatorKind.ADD.arity == 2

    def test_wrong_operand_count(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        with pytest.raises(CompileError, match="expects 1 operand"):
            compile_operation(algebra, OperatorKind.NEG, (c, c), c)


class TestComplexNumbers:

    def test_geometric_product_is_complex_multiplication(self, epga1d):
        """(a + bi)(c + di) = (ac - bd) + (ad + bc)i."""
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        kind = OperatorKind.GEOMETRIC_PRODUCT
        assert select_result_class(algebra, kind, (c, c), list(classes.values())) is c

        op = compile_operation(algebra, kind, (c, c), c)
        real, imaginary = op.components
        assert expand(real) == {((0, 0), (1, 0)): 1, ((0, 1), (1, 1)): -1}
        assert expand(imaginary) == {((0, 0), (1, 1)): 1, ((0, 1), (1, 0)): 1}

        values = _values((1.5, 2.0), (3.0, -4.0))
        assert evaluate(real, values) == pytest.approx(1.5 * 3.0 - 2.0 * -4.0)
        assert evaluate(imaginary, values) == pytest.approx(1.5 * -4.0 + 2.0 * 3.0)

    def test_terms_follow_blade_order(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        op = compile_operation(algebra, OperatorKind.GEOMETRIC_PRODUCT, (c, c), c)
        real = op.components[0]
        assert isinstance(real, Sum)
        assert [t.coefficient for t in real.terms] == [1, -1]

    def test_squared_magnitude(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        kind = OperatorKind.SQUARED_MAGNITUDE
        result = select_result_class(algebra, kind, (c,), list(classes.values()))
        assert result is classes["Scalar"]
        op = compile_operation(algebra, kind, (c,), result)
        assert evaluate(op.components[0], _values((3.0, 4.0))) == pytest.approx(25.0)

    def test_add_scalar(self, epga1d):
        algebra, classes = epga1d
        c, s = classes["ComplexNumber"], classes["Scalar"]
        op = compile_operation(algebra, OperatorKind.ADD, (c, s), c)
        values = _values((1.0, 2.0), (10.0,))
        assert [evaluate(x, values) for x in op.components] == [11.0, 2.0]

    def test_missing_component_is_zero(self, epga1d):
        algebra, classes = epga1d
        c, s = classes["ComplexNumber"], classes["Scalar"]
        op = compile_operation(algebra, OperatorKind.ADD, (s, s), c)
        assert op.components[1] == Literal(0)


class TestProjectivePoints:

    def test_null_generator_terms_vanish(self, ppga3d):
        """Only e123 survives P.P: every other Point blade contains e0."""
        algebra, classes = ppga3d
        p = classes["Point"]
        op = compile_operation(algebra, OperatorKind.SCALAR_PRODUCT, (p, p), classes["Scalar"])
        assert expand(op.components[0]) == {((0, 0), (1, 0)): -1}

    def test_declared_signs_are_baked_in(self, ppga3d):
        """Point stores -e023 and -e012; moving into unsigned slots flips exactly those."""
        algebra, classes = ppga3d
        p, s = classes["Point"], classes["Scalar"]
        plain = MultivectorClass("PlainPoint", [(c.blade, 1) for c in p.components])
        op = compile_operation(algebra, OperatorKind.GEOMETRIC_PRODUCT, (p, s), plain)
        signs = []
        for slot, expr in enumerate(op.components):
            assert isinstance(expr, Sum)
            signs.append(expand(expr)[((0, slot), (1, 0))])
        assert signs == [1, -1, 1, -1]

    def test_same_class_signs_cancel(self, ppga3d):
        algebra, classes = ppga3d
        p, s = classes["Point"], classes["Scalar"]
        op = compile_operation(algebra, OperatorKind.GEOMETRIC_PRODUCT, (p, s), p)
        for slot, expr in enumerate(op.components):
            assert expand(expr) == {((0, slot), (1, 0)): 1}

    def test_non_representable_result(self, ppga3d):
        algebra, classes = ppga3d
        r, p = classes["Rotor"], classes["Point"]
        with pytest.raises(CompileError) as info:
            compile_operation(algebra, OperatorKind.GEOMETRIC_PRODUCT, (r, p), r)
        assert info.value.pair == "RotorxPoint GeometricProduct"
        assert "not a component of Rotor" in str(info.value)

    def test_transformation_is_grade_preserving(self, ppga3d):
        algebra, classes = ppga3d
        r, p = classes["Rotor"], classes["Point"]
        kind = OperatorKind.TRANSFORMATION
        assert result_signature(algebra, kind, (r, p)) == p.signature
        op = compile_operation(algebra, kind, (r, p), p)
        # a * b is kept as intermediate sums
        assert any(isinstance(f, Sum) for t in op.components[0].terms for f in t.factors)


class TestResultSelection:

    def test_identically_zero_is_skipped(self, ppga3d):
        algebra, classes = ppga3d
        p = classes["Point"]
        # the outer product of two grade 3 blades in four dimensions is zero
        assert select_result_class(algebra, OperatorKind.OUTER_PRODUCT, (p, p), list(classes.values())) is None

    def test_no_covering_class_is_skipped(self, ppga3d):
        algebra, classes = ppga3d
        r, p = classes["Rotor"], classes["Point"]
        assert select_result_class(algebra, OperatorKind.GEOMETRIC_PRODUCT, (r, p), list(classes.values())) is None

    def test_exact_match_beats_covering_classes(self, ppga3d):
        """Rotor also holds the scalar, but Scalar declares exactly it."""
        algebra, classes = ppga3d
        r = classes["Rotor"]
        result = select_result_class(algebra, OperatorKind.SQUARED_MAGNITUDE, (r,), list(classes.values()))
        assert result is classes["Scalar"]

    def test_two_classes_with_one_blade_set_are_rejected(self):
        """Rotor and Spinor list {1, e12} in different orders; neither is preferred."""
        algebra, classes = _built("epga2d:1,1,1;Scalar:1;Rotor:1,e12;Spinor:e12,1;Vector:e1,e2")
        v = classes["Vector"]
        with pytest.raises(CompileError, match="declared by Rotor and Spinor") as info:
            select_result_class(algebra, OperatorKind.GEOMETRIC_PRODUCT, (v, v), list(classes.values()))
        assert info.value.pair == "VectorxVector GeometricProduct"

    def test_several_covering_classes_are_rejected(self):
        """v e0 = x - y e01 is declared nowhere and fits inside both Small and Full."""
        algebra, classes = _built("amb:1,1;Scalar:1;Vector:e0,e1;X:e0;Small:1,e0,e01;Full:1,e0,e1,e01")
        v, x = classes["Vector"], classes["X"]
        kind = OperatorKind.GEOMETRIC_PRODUCT
        assert result_signature(algebra, kind, (v, x)) == frozenset([0, 0b11])
        with pytest.raises(CompileError, match="fits inside Small and Full"):
            select_result_class(algebra, kind, (v, x), list(classes.values()))

    def test_single_covering_class(self):
        algebra, classes = _built("amb:1,1;Scalar:1;Vector:e0,e1;X:e0;Full:1,e0,e1,e01")
        v, x = classes["Vector"], classes["X"]
        result = select_result_class(algebra, OperatorKind.GEOMETRIC_PRODUCT, (v, x), list(classes.values()))
        assert result is classes["Full"]

    def test_every_candidate_is_named(self, epga1d):
        algebra, _ = epga1d
        v = MultivectorClass("Vector", [(0b01, 1), (0b10, 1)])
        x = MultivectorClass("X", [(0b01, 1)])
        a = MultivectorClass("A", [(0, 1), (0b01, 1), (0b11, 1)])
        b = MultivectorClass("B", [(0, 1), (0b10, 1), (0b11, 1)])
        c = MultivectorClass("C", [(0, 1), (0b01, 1), (0b10, 1), (0b11, 1)])
        with pytest.raises(CompileError, match="fits inside A, B and C"):
            select_result_class(algebra, OperatorKind.GEOMETRIC_PRODUCT, (v, x), [v, x, a, b, c])


class TestDerivedOperators:

    def _compiled(self, built, kind, names):
        algebra, classes = built
        operands = tuple(classes[n] for n in names)
        result = select_result_class(algebra, kind, operands, list(classes.values()))
        op = compile_operation(algebra, kind, operands, result)
        optimize(op)
        return op

    def test_constants(self, epga1d):
        _, classes = epga1d
        zero = self._compiled(epga1d, OperatorKind.ZERO, ["ComplexNumber"])
        one = self._compiled(epga1d, OperatorKind.ONE, ["ComplexNumber"])
        assert zero.result is one.result is classes["ComplexNumber"]
        assert zero.components == [Literal(0), Literal(0)]
        assert one.components == [Literal(1), Literal(0)]

    def test_one_needs_a_scalar_component(self, ppga3d):
        algebra, classes = ppga3d
        p = classes["Point"]
        assert select_result_class(algebra, OperatorKind.ONE, (p,), list(classes.values())) is None
        assert select_result_class(algebra, OperatorKind.ZERO, (p,), list(classes.values())) is p

    def test_into_projects(self, ppga3d):
        algebra, classes = ppga3d
        r, s, p = classes["Rotor"], classes["Scalar"], classes["Point"]
        assert select_result_class(algebra, OperatorKind.INTO, (r, s), list(classes.values())) is s
        # embedding into a larger class or an unrelated one is not a projection
        assert select_result_class(algebra, OperatorKind.INTO, (s, r), list(classes.values())) is None
        assert select_result_class(algebra, OperatorKind.INTO, (p, s), list(classes.values())) is None
        op = self._compiled(ppga3d, OperatorKind.INTO, ["Rotor", "Scalar"])
        assert op.components == [ComponentRef(0, "Rotor", 0)]

    def test_slot_wise_product_ignores_declared_signs(self, ppga3d):
        op = self._compiled(ppga3d, OperatorKind.MUL, ["Point", "Point"])
        values = _values((1.0, 2.0, 3.0, 4.0), (5.0, 6.0, 7.0, 8.0))
        assert [evaluate(c, values, op.arena) for c in op.components] == [5.0, 12.0, 21.0, 32.0]

    def test_slot_wise_quotient(self, ppga3d):
        op = self._compiled(ppga3d, OperatorKind.DIV, ["Point", "Point"])
        values = _values((1.0, 2.0, 3.0, 4.0), (2.0, 8.0, 6.0, 16.0))
        assert [evaluate(c, values, op.arena) for c in op.components] == pytest.approx([0.5, 0.25, 0.5, 0.25])

    def test_slot_wise_needs_one_class(self, ppga3d):
        algebra, classes = ppga3d
        r, p = classes["Rotor"], classes["Point"]
        with pytest.raises(CompileError, match="one class"):
            compile_operation(algebra, OperatorKind.MUL, (r, p), r)

    def test_magnitude(self, epga1d):
        _, classes = epga1d
        op = self._compiled(epga1d, OperatorKind.MAGNITUDE, ["ComplexNumber"])
        assert op.result is classes["Scalar"]
        assert isinstance(op.components[0], Sqrt)
        assert evaluate(op.components[0], _values((3.0, 4.0)), op.arena) == pytest.approx(5.0)

    def test_signum(self, epga1d):
        op = self._compiled(epga1d, OperatorKind.SIGNUM, ["ComplexNumber"])
        values = _values((3.0, 4.0))
        assert [evaluate(c, values, op.arena) for c in op.components] == pytest.approx([0.6, 0.8])

    def test_inverse_is_the_complex_reciprocal(self, epga1d):
        op = self._compiled(epga1d, OperatorKind.INVERSE, ["ComplexNumber"])
        values = _values((3.0, 4.0))
        assert [evaluate(c, values, op.arena) for c in op.components] == pytest.approx([3 / 25, -4 / 25])

    def test_geometric_quotient_is_complex_division(self, epga1d):
        """(1 + 2i) / (3 + 4i) = (11 + 2i) / 25."""
        op = self._compiled(epga1d, OperatorKind.GEOMETRIC_QUOTIENT, ["ComplexNumber", "ComplexNumber"])
        values = _values((1.0, 2.0), (3.0, 4.0))
        assert [evaluate(c, values, op.arena) for c in op.components] == pytest.approx([11 / 25, 2 / 25])

    def test_scale(self, epga1d):
        op = self._compiled(epga1d, OperatorKind.SCALE, ["ComplexNumber", "Scalar"])
        values = _values((1.0, 2.0), (3.0,))
        assert [evaluate(c, values, op.arena) for c in op.components] == [3.0, 6.0]

    def test_scale_needs_the_scalar_class(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        with pytest.raises(CompileError, match="scales by the scalar class"):
            compile_operation(algebra, OperatorKind.SCALE, (c, c), c)

    def test_null_classes_have_no_magnitude(self):
        algebra, classes = _built("pga1d:0,1;Scalar:1;Ideal:e0;Motor:1,e0")
        everything = list(classes.values())
        ideal = classes["Ideal"]
        for kind in (OperatorKind.MAGNITUDE, OperatorKind.SIGNUM, OperatorKind.INVERSE):
            assert select_result_class(algebra, kind, (ideal,), everything) is None, kind
        # the motor's squared magnitude is its scalar part squared
        motor = classes["Motor"]
        assert select_result_class(algebra, OperatorKind.POWI, (motor,), everything) is motor
        assert select_result_class(algebra, OperatorKind.GEOMETRIC_QUOTIENT, (motor, ideal), everything) is None

    def test_powi_is_composite(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        assert OperatorKind.POWI.composite
        assert select_result_class(algebra, OperatorKind.POWI, (c,), list(classes.values())) is c
        op = compile_operation(algebra, OperatorKind.POWI, (c,), c)
        assert op.components == []
        assert requirements(OperatorKind.POWI, (c,)) == [
            (OperatorKind.ONE, (c,)), (OperatorKind.INVERSE, (c,)),
            (OperatorKind.GEOMETRIC_PRODUCT, (c, c)),
        ]

    def test_powi_has_no_formula(self, epga1d):
        algebra, classes = epga1d
        c = classes["ComplexNumber"]
        with pytest.raises(CompileError, match="no closed form"):
            result_signature(algebra, OperatorKind.POWI, (c,))


class TestPlan:

    def test_scalar_pairs_are_left_out(self, epga1d):
        _, classes = epga1d
        entries = plan(list(classes.values()))
        for kind, operands in entries:
            assert not all(c.is_scalar for c in operands)
        kinds = [k for k, ops in entries if ops == (classes["ComplexNumber"],)]
        assert len(kinds) == len([k for k in OperatorKind if k.arity == 1])

    def test_pairing_rules(self, ppga3d):
        _, classes = ppga3d
        entries = plan(list(classes.values()))
        for kind, operands in entries:
            if kind in (OperatorKind.MUL, OperatorKind.DIV):
                assert operands[0] is operands[1]
            if kind is OperatorKind.INTO:
                assert operands[0] is not operands[1]
            if kind is OperatorKind.SCALE:
                assert operands[1].is_scalar
        assert entries[-1] == (OperatorKind.POWI, (classes["Point"],))
        assert [k for k, _ in entries[-2:]] == [OperatorKind.POWI, OperatorKind.POWI]

    def test_order_is_stable(self, ppga3d):
        _, classes = ppga3d
        first = [(k, tuple(c.name for c in ops)) for k, ops in plan(list(classes.values()))]
        second = [(k, tuple(c.name for c in ops)) for k, ops in plan(list(classes.values()))]
        assert first == second
