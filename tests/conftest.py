import os
import sys


# ----------------------------------------------------------------------
# 1. Environment MUST be set before any geomcore imports happen
# ----------------------------------------------------------------------

os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_IDLE_WATCHDOG", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

sys.path.insert(0, os.path.dirname(__file__))


import pytest

from compute_stubs import FakeVMController, StubComputeServer, build_pipeline, write_definitions


@pytest.fixture
def definitions_dir(tmp_path):
    directory = tmp_path / "files"
    directory.mkdir()
    write_definitions(directory)
    return directory


@pytest.fixture
def stub():
    return StubComputeServer()


@pytest.fixture
def vm():
    return FakeVMController()


@pytest.fixture
def pipeline(definitions_dir, stub, vm):
    return build_pipeline(definitions_dir, stub, vm)
