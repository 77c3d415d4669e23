"""
Tests for the generation pipeline and the command line driver.
"""

import os

import pytest

from gacodegen.cli import build_parser, config_from_args, main
from gacodegen.config import GeneratorConfig, get_default_config
from gacodegen.errors import DescriptorError
from gacodegen.pipeline import (
    FAILED, OK, SKIPPED, build_context, generate, generate_all, plan_operations,
    print_cayley_table,
)

from conftest import EPGA1D, PPGA3D, SEVEN


def _read(path):
    with open(path, encoding="utf-8") as f:
        return f.read()


class TestConfig:

    def test_defaults(self):
        config = get_default_config()
        assert config.isa == 'scalar'
        assert config.backends == ['rust', 'glsl']
        assert config.max_iterations == 32
        assert config.sanity

    def test_backends_are_not_shared(self):
        a, b = GeneratorConfig(), GeneratorConfig()
        a.backends.append('x')
        assert b.backends == ['rust', 'glsl']


class TestGenerate:

    def test_writes_one_file_per_backend(self, config, tmp_path):
        report = generate(EPGA1D, config)
        assert not report.failed
        assert report.name == "epga1d"
        assert report.paths == [
            os.path.join(str(tmp_path), "epga1d", "epga1d.rs"),
            os.path.join(str(tmp_path), "epga1d", "epga1d.glsl"),
        ]
        rs = _read(report.paths[0])
        assert "impl GeometricProduct<ComplexNumber> for ComplexNumber {" in rs
        shader = _read(report.paths[1])
        assert "ComplexNumber complex_number_complex_number_geometric_product(ComplexNumber a, ComplexNumber b) {" in shader

    def test_every_pair_is_reported(self, config):
        report = generate(PPGA3D, config)
        assert not report.failed
        statuses = {r.status for r in report.pairs}
        assert statuses <= {OK, SKIPPED}
        ok = [r for r in report.pairs if r.status == OK]
        assert {r.backend for r in ok} == {'rust', 'glsl'}
        assert any(r.pair == "RotorxPoint Transformation" for r in ok)
        assert any(r.pair == "RotorxPoint GeometricProduct" and r.status == SKIPPED for r in report.pairs)

    def test_output_is_deterministic(self, config, tmp_path):
        first = generate(SEVEN, config)
        texts = [_read(p) for p in first.paths]
        config.output_dir = str(tmp_path / "again")
        second = generate(SEVEN, config)
        assert [_read(p) for p in second.paths] == texts

    def test_bad_descriptor_is_reported(self, config, tmp_path):
        report = generate("broken:1,5;Scalar:1", config)
        assert report.failed
        assert report.name == "broken"
        assert "must be -1, 0 or 1" in report.errors[0]
        assert report.paths == []
        assert not os.path.exists(os.path.join(str(tmp_path), "broken"))

    def test_one_failure_does_not_stop_others(self, config):
        reports = generate_all(["broken:1,5", EPGA1D], config)
        assert reports[0].failed
        assert not reports[1].failed
        assert len(reports[1].paths) == 2

    def test_ambiguous_pair_fails_alone(self, config):
        text = "amb:1,1;Scalar:1;Vector:e0,e1;X:e0;A:1,e0,e01;B:1,e1,e01"
        report = generate(text, config)
        failed = [r for r in report.pairs if r.status == FAILED]
        assert any(r.pair == "VectorxX GeometricProduct" for r in failed)
        assert report.failed
        # the other pairs are still written
        assert len(report.paths) == 2
        assert "impl Neg for Vector {" in _read(report.paths[0])

    def test_duplicate_blade_sets_fail_every_affected_pair(self, config):
        text = "dup:1,1;Scalar:1;A:1,e01;B:e01,1"
        report = generate(text, config)
        by_pair = {r.pair: r for r in report.pairs if r.backend is None}
        assert by_pair["AxA GeometricProduct"].status == FAILED
        assert "declared by A and B" in by_pair["AxA GeometricProduct"].detail
        # Powi calls the failed inverse and product
        powi = by_pair["A Powi"]
        assert powi.status == SKIPPED
        assert powi.detail == "needs A Inverse, AxA GeometricProduct"

    def test_powi_is_written_after_what_it_calls(self, config):
        report = generate(PPGA3D, config)
        ok = {(r.pair, r.backend) for r in report.pairs if r.status == OK}
        assert ("Rotor Powi", "rust") in ok
        assert ("Rotor Powi", "glsl") in ok
        skipped = {r.pair: r.detail for r in report.pairs if r.status == SKIPPED}
        assert skipped["Point Powi"] == "no class holds the result"
        rs = _read(report.paths[0])
        assert rs.index("impl One for Rotor {") < rs.index("impl Powi for Rotor {")
        shader = _read(report.paths[1])
        assert "Rotor rotor_powi(Rotor a, int exponent) {" in shader

    def test_only_requested_backend(self, config):
        config.backends = ['glsl']
        report = generate(EPGA1D, config)
        assert [os.path.basename(p) for p in report.paths] == ["epga1d.glsl"]


class TestContext:

    def test_build_context(self, config):
        context = build_context(EPGA1D, config)
        assert context.algebra.name == "epga1d"
        assert [c.name for c in context.classes] == ["Scalar", "ComplexNumber"]
        assert context.config is config

    def test_build_context_raises(self, config):
        with pytest.raises(DescriptorError):
            build_context("x:1;Bad:e7", config)

    def test_plan(self, config):
        entries, reports = plan_operations(build_context(EPGA1D, config))
        assert all(r.status == SKIPPED for r in reports)
        kinds = [(k.value, tuple(c.name for c in ops), res.name) for k, ops, res in entries]
        assert ("GeometricProduct", ("ComplexNumber", "ComplexNumber"), "ComplexNumber") in kinds
        assert ("SquaredMagnitude", ("ComplexNumber",), "Scalar") in kinds

    def test_cayley_table(self, config, capsys):
        print_cayley_table(build_context(EPGA1D, config).algebra)
        out = capsys.readouterr().out
        assert "=== epga1d gp table [1, 1] ===" in out
        assert "-e01" in out


class TestCli:

    def test_parser(self, tmp_path):
        args = build_parser().parse_args([EPGA1D, "-o", str(tmp_path), "--isa", "avx",
                                          "--backend", "rust", "--no-sanity"])
        config = config_from_args(args)
        assert config.isa == "avx"
        assert config.backends == ["rust"]
        assert config.output_dir == str(tmp_path)
        assert not config.sanity
        assert not config.print_table

    def test_default_backends(self):
        config = config_from_args(build_parser().parse_args([EPGA1D]))
        assert config.backends == ["rust", "glsl"]

    def test_main_success(self, tmp_path):
        assert main([EPGA1D, "-o", str(tmp_path), "--isa", "sse", "--no-sanity"]) == 0
        assert os.path.exists(os.path.join(str(tmp_path), "epga1d", "epga1d.rs"))

    def test_main_failure(self, tmp_path):
        assert main(["broken:1,2", EPGA1D, "-o", str(tmp_path), "--no-sanity"]) == 1
        assert os.path.exists(os.path.join(str(tmp_path), "epga1d", "epga1d.glsl"))

    def test_unknown_isa_is_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([EPGA1D, "--isa", "altivec"])

    def test_bad_iteration_cap(self, tmp_path):
        assert main([EPGA1D, "-o", str(tmp_path), "--max-iterations", "0"]) == 1
