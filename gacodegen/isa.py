"""
Instruction sets the native backend can target.

Templates are Rust expressions; ``{a}``/``{b}`` are vector operands, ``{x}`` a
scalar, ``{values}`` a comma separated lane list, ``{v}`` a vector to shuffle
with ``{lanes}`` (comma separated) or ``{imm}`` (2 bits per lane).
"""

from typing import NamedTuple, Optional

from gacodegen.errors import EmitError


class InstructionSet(NamedTuple):
    name: str
    width: int
    vector_type: Optional[str] = None
    arch: Optional[str] = None
    feature: Optional[str] = None
    add: str = "{a} + {b}"
    sub: str = "{a} - {b}"
    mul: str = "{a} * {b}"
    neg: str = "-{a}"
    splat: str = "{x}"
    load: str = "{values}"
    shuffle: Optional[str] = None

    @property
    def is_scalar(self) -> bool:
        return self.width == 1


SCALAR = InstructionSet('scalar', 1)

SSE = InstructionSet(
    'sse', 4, '__m128', 'x86_64', None,
    add="_mm_add_ps({a}, {b})",
    sub="_mm_sub_ps({a}, {b})",
    mul="_mm_mul_ps({a}, {b})",
    neg="_mm_sub_ps(_mm_setzero_ps(), {a})",
    splat="_mm_set1_ps({x})",
    load="_mm_setr_ps({values})",
    shuffle="_mm_shuffle_ps::<{imm}>({v}, {v})",
)

AVX = InstructionSet(
    'avx', 8, '__m256', 'x86_64', 'avx',
    add="_mm256_add_ps({a}, {b})",
    sub="_mm256_sub_ps({a}, {b})",
    mul="_mm256_mul_ps({a}, {b})",
    neg="_mm256_sub_ps(_mm256_setzero_ps(), {a})",
    splat="_mm256_set1_ps({x})",
    load="_mm256_setr_ps({values})",
)

NEON = InstructionSet(
    'neon', 4, 'float32x4_t', 'aarch64', None,
    add="vaddq_f32({a}, {b})",
    sub="vsubq_f32({a}, {b})",
    mul="vmulq_f32({a}, {b})",
    neg="vnegq_f32({a})",
    splat="vdupq_n_f32({x})",
    load="vld1q_f32([{values}].as_ptr())",
)

WASM = InstructionSet(
    'wasm', 4, 'v128', 'wasm32', 'simd128',
    add="f32x4_add({a}, {b})",
    sub="f32x4_sub({a}, {b})",
    mul="f32x4_mul({a}, {b})",
    neg="f32x4_neg({a})",
    splat="f32x4_splat({x})",
    load="f32x4({values})",
    shuffle="i32x4_shuffle::<{lanes}>({v}, {v})",
)

INSTRUCTION_SETS = {isa.name: isa for isa in (SCALAR, SSE, AVX, NEON, WASM)}


def get_instruction_set(name: str) -> InstructionSet:

    try:
        return INSTRUCTION_SETS[name]
    except KeyError:
        raise EmitError(f"unknown instruction set {name!r}, expected one of "
                        f"{', '.join(sorted(INSTRUCTION_SETS))}") from None
