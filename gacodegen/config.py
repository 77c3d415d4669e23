"""
Configuration for a generation run.
"""

from dataclasses import dataclass, field
from typing import List

BACKENDS = ('rust', 'glsl')


@dataclass
class GeneratorConfig:
    """What to emit and where."""
    # Targets
    isa: str = 'scalar'
    backends: List[str] = field(default_factory=lambda: list(BACKENDS))

    # Output
    output_dir: str = './generated'

    # Pipeline
    max_iterations: int = 32
    sanity: bool = True
    print_table: bool = False


def get_default_config() -> GeneratorConfig:
    return GeneratorConfig()
