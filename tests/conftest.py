import pytest

from gacodegen.config import GeneratorConfig
from gacodegen.descriptor import build, parse_descriptor

EPGA1D = "epga1d:1,1;Scalar:1;ComplexNumber:1,e01"
PPGA3D = "ppga3d:0,1,1,1;Scalar:1;Rotor:1,e23,-e13,e12;Point:e123,-e023,e013,-e012"
# 7 component class for lane grouping, 8 component class to hold its products
SEVEN = "seven3d:1,1,1;Scalar:1;Seven:1,e0,e1,e2,e01,e02,e12;Full:1,e0,e1,e2,e01,e02,e12,e012"


def _built(text):
    algebra, classes = build(parse_descriptor(text))
    return algebra, {c.name: c for c in classes}


@pytest.fixture
def epga1d():
    return _built(EPGA1D)


@pytest.fixture
def ppga3d():
    return _built(PPGA3D)


@pytest.fixture
def seven3d():
    return _built(SEVEN)


@pytest.fixture
def config(tmp_path):
    return GeneratorConfig(isa='sse', output_dir=str(tmp_path), sanity=False)
