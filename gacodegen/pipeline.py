"""
Drive one or more algebra descriptors through compile, optimize, legalize
and emit, and write one file per backend.

A failing ``(class, operator)`` pair is reported and left out of the output;
it never stops the other pairs, backends or algebras.
"""

import os
from typing import List, NamedTuple, Optional

from gacodegen import reference
from gacodegen.algebra import ProductKind, mask_to_name
from gacodegen.compiler import (
    compile_operation, pair_name, plan, requirements, select_result_class,
)
from gacodegen.config import GeneratorConfig
from gacodegen.descriptor import build, parse_descriptor
from gacodegen.emit import get_backend, target_isa
from gacodegen.errors import AlgebraError, CompileError, DescriptorError, EmitError
from gacodegen.legalizer import legalize
from gacodegen.log import get_logger
from gacodegen.optimizer import optimize

logger = get_logger(__name__)

OK = 'ok'
SKIPPED = 'skipped'
FAILED = 'failed'


class GenerationContext(NamedTuple):
    descriptor: object
    algebra: object
    classes: list
    config: GeneratorConfig


class PairReport(NamedTuple):
    pair: str
    status: str
    backend: Optional[str] = None
    detail: str = ''


class AlgebraReport:
    """Outcome of one descriptor: per-pair reports, written files, fatal errors."""

    def __init__(self, name: str):
        self.name = name
        self.pairs: List[PairReport] = []
        self.paths: List[str] = []
        self.errors: List[str] = []

    def __repr__(self):
        return f"AlgebraReport({self.name!r}, {len(self.paths)} file(s), {len(self.failures)} failure(s))"

    @property
    def failures(self):
        return [r for r in self.pairs if r.status == FAILED]

    @property
    def failed(self) -> bool:
        return bool(self.errors or self.failures)


def print_cayley_table(algebra, kind=ProductKind.GEOMETRIC):

    labels = [mask_to_name(b) for b in algebra.blades]
    column = max(6, max(len(l) for l in labels) + 2)

    print(f"=== {algebra.name} {kind.value} table {list(algebra.squares)} ===")
    print("Rows × Columns → Result")
    print()
    print(f"{'':{column}}" + "".join(f"{l:>{column}}" for l in labels))
    print("-" * (column * (len(labels) + 1)))
    for a, row in zip(algebra.blades, algebra.cayley_table(kind)):
        entries = []
        for r, c in row:
            if c == 0:
                entries.append("0")
            else:
                entries.append(("+" if c > 0 else "-") + mask_to_name(r))
        print(f"{labels[a]:{column}}" + "".join(f"{e:>{column}}" for e in entries))
    print()


def build_context(text: str, config: GeneratorConfig) -> GenerationContext:
    """Parse and build an algebra; cross-check its table when ``config.sanity``."""
    descriptor = parse_descriptor(text)
    algebra, classes = build(descriptor)
    logger.debug("built %r with %d class(es)", algebra, len(classes))
    if config.sanity:
        reference.sanity_check(algebra)
    return GenerationContext(descriptor, algebra, classes, config)


def plan_operations(context: GenerationContext):
    """
    Decide the result class of every planned pair.

    Returns ``(entries, reports)``: ``(kind, operands, result)`` triples to
    generate, and reports for the pairs that were skipped or rejected. A
    composite is kept only when every operation it calls is planned with the
    same result class.
    """
    entries = []
    reports = []
    results = {}
    for kind, operands in plan(context.classes):
        pair = pair_name(kind, operands)
        try:
            result = select_result_class(context.algebra, kind, operands, context.classes)
        except CompileError as e:
            logger.error("%s: %s", context.algebra.name, e)
            reports.append(PairReport(pair, FAILED, detail=e.reason))
            continue
        if result is None:
            reports.append(PairReport(pair, SKIPPED, detail="no class holds the result"))
            continue
        missing = [pair_name(*r) for r in requirements(kind, operands)
                   if results.get(pair_name(*r)) != result]
        if missing:
            reports.append(PairReport(pair, SKIPPED, detail=f"needs {', '.join(missing)}"))
            continue
        entries.append((kind, operands, result))
        results[pair] = result
    logger.debug("%s: %d operation(s) planned", context.algebra.name, len(entries))
    return entries, reports


def run_operation(context: GenerationContext, kind, operands, result, isa):
    """Compile, optimize and legalize one operation."""
    operation = compile_operation(context.algebra, kind, operands, result)
    optimize(operation, context.config.max_iterations)
    legalize(operation, isa)
    return operation


def generate_backend(context: GenerationContext, backend: str, entries):
    """Full source text of one backend, plus a report per entry."""
    module, _ = get_backend(backend)
    isa = target_isa(backend, context.config.isa)
    operations = []
    reports = []
    done = set()
    for kind, operands, result in entries:
        pair = pair_name(kind, operands)
        missing = [pair_name(*r) for r in requirements(kind, operands) if pair_name(*r) not in done]
        if missing:
            reports.append(PairReport(pair, FAILED, backend, f"needs {', '.join(missing)}"))
            continue
        try:
            operations.append(run_operation(context, kind, operands, result, isa))
        except CompileError as e:
            logger.error("%s %s: %s", context.algebra.name, backend, e)
            reports.append(PairReport(pair, FAILED, backend, e.reason))
            continue
        reports.append(PairReport(pair, OK, backend))
        done.add(pair)

    text = module.emit_module(context.descriptor.text, context.classes, operations, isa)
    return text, reports


def output_path(output_dir: str, algebra_name: str, backend: str) -> str:

    _, extension = get_backend(backend)
    return os.path.join(output_dir, algebra_name, algebra_name + extension)


def write_text(path: str, text: str):

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    logger.info("Wrote %s", path)


def generate(text: str, config: GeneratorConfig) -> AlgebraReport:
    """Generate every configured backend for one descriptor."""
    report = AlgebraReport(text.split(':', 1)[0].strip())
    try:
        context = build_context(text, config)
    except (DescriptorError, AlgebraError) as e:
        logger.error("%s", e)
        report.errors.append(str(e))
        return report

    if config.print_table:
        print_cayley_table(context.algebra)

    entries, reports = plan_operations(context)
    report.pairs.extend(reports)

    for backend in config.backends:
        try:
            source, pair_reports = generate_backend(context, backend, entries)
        except EmitError as e:
            logger.error("%s %s: %s", context.algebra.name, backend, e)
            report.errors.append(f"{backend}: {e}")
            continue
        report.pairs.extend(pair_reports)
        path = output_path(config.output_dir, context.algebra.name, backend)
        write_text(path, source)
        report.paths.append(path)
    return report


def generate_all(texts, config: GeneratorConfig) -> List[AlgebraReport]:

    return [generate(text, config) for text in texts]
