"""Geometric algebra code generator: Rust (SIMD) and GLSL libraries from a signature."""

from gacodegen.algebra import Algebra, MultivectorClass, ProductKind
from gacodegen.compiler import OperatorKind, compile_operation, select_result_class
from gacodegen.config import GeneratorConfig, get_default_config
from gacodegen.descriptor import build, parse_descriptor
from gacodegen.errors import (
    AlgebraError, CompileError, DescriptorError, EmitError, GenerationError, LegalizeError,
)
from gacodegen.legalizer import legalize
from gacodegen.optimizer import optimize
from gacodegen.pipeline import generate, generate_all

__version__ = "0.1.0"
