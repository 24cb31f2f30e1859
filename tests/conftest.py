import os
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from gdml.gdml_compiler import Compiler
from gdml.gdml_state import ParsedSrc

# Monkeypatch coverage to bypass teardown crash in act/docker
if os.getenv("COVERAGE_PROCESS_START"):
    import coverage

    coverage.process_startup()

    import coverage.collector

    def safe_stop(self: Any) -> None:
        if self in getattr(self, "_collectors", []):
            self._collectors.remove(self)

    coverage.collector.Collector.stop = safe_stop


CompileFn = Callable[..., Compiler]


@pytest.fixture
def compile_source() -> CompileFn:
    """Compiles a source string and returns the compiler holding its diagnostics."""

    def _compile(source: str, dependencies: Iterable[ParsedSrc] = ()) -> Compiler:
        compiler = Compiler.from_string(source, name="<test>", dependencies=dependencies)
        compiler.compile()
        return compiler

    return _compile


@pytest.fixture
def error_codes() -> Callable[[Compiler], list[str]]:
    def _codes(compiler: Compiler) -> list[str]:
        return [m.code for m in compiler.get_errors()]

    return _codes
