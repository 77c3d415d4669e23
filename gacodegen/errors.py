"""Error taxonomy of the generator.

Every error names where it came from: a descriptor clause, or the
``(class, operator)`` pair being generated.
"""


class GenerationError(Exception):
    """Base class for everything the generator raises on bad input."""


class DescriptorError(GenerationError):

    def __init__(self, clause: str, reason: str):
        super().__init__(f"descriptor clause {clause!r}: {reason}")
        self.clause = clause
        self.reason = reason


class AlgebraError(GenerationError):
    pass


class PairError(GenerationError):
    """An error tied to one operator applied to one tuple of operand classes."""

    def __init__(self, operator: str, operands, reason: str):
        self.operator = operator
        self.operands = tuple(operands)
        self.reason = reason
        super().__init__(f"{self.pair}: {reason}")

    @property
    def pair(self) -> str:
        return f"{'x'.join(self.operands)} {self.operator}"


class CompileError(PairError):
    pass


class LegalizeError(PairError):
    """Raised inside the legalizer only; it always falls back to scalar lanes."""


class EmitError(GenerationError):
    pass
