from gacodegen.emit import glsl, rust
from gacodegen.errors import EmitError
from gacodegen.isa import SCALAR, get_instruction_set

BACKENDS = {
    'rust': (rust, '.rs'),
    'glsl': (glsl, '.glsl'),
}


def get_backend(name: str):
    """Return ``(module, file_extension)`` for a backend name."""
    try:
        return BACKENDS[name]
    except KeyError:
        raise EmitError(f"unknown backend {name!r}, expected one of {', '.join(sorted(BACKENDS))}") from None


def target_isa(backend: str, isa_name: str):
    """Instruction set a backend is legalized for; GLSL is always scalar."""
    get_backend(backend)
    isa = get_instruction_set(isa_name)
    if backend == 'glsl':
        return SCALAR
    return isa
