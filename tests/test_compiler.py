import logging
from pathlib import Path

import pytest

from gdml.gdml_compiler import Compiler
from gdml.gdml_diagnostics import InternalError, Level, Message, Range
from gdml.gdml_state import UnitParser


def message(info: str, level: Level = Level.ERROR) -> Message:
    return Message(level, info, Range.at(1, 1))


def test_compile_success() -> None:
    compiler = Compiler.from_string("struct A { x: int }")
    parsed = compiler.compile()
    assert compiler.success
    assert parsed.published
    assert parsed.ast is not None
    assert [str(t) for t in parsed.get_exported_types()] == ["A"]


def test_compile_is_memoized() -> None:
    compiler = Compiler.from_string("let x = missing")
    first = compiler.compile()
    assert compiler.compile() is first
    assert len(compiler.get_errors()) == 1


def test_syntax_errors_skip_typechecking() -> None:
    compiler = Compiler.from_string("let = 1\nlet y = missing")
    parsed = compiler.compile()
    assert parsed.ast is None
    assert [m.code for m in compiler.get_errors()] == ["GdmlSyntaxError"]


def test_long_operator_chain_is_a_checked_error(caplog: pytest.LogCaptureFixture) -> None:
    compiler = Compiler.from_string("let x = " + " + ".join(["1"] * 600))
    with caplog.at_level(logging.DEBUG, logger="gdml"):
        parsed = compiler.compile()
    assert parsed.ast is None
    assert [m.code for m in compiler.get_errors()] == ["GdmlSyntaxError"]


def test_chain_within_limit_compiles_with_debug_logging(
    caplog: pytest.LogCaptureFixture,
) -> None:
    compiler = Compiler.from_string("let x = " + " + ".join(["1"] * 100))
    with caplog.at_level(logging.DEBUG, logger="gdml"):
        compiler.compile()
    assert compiler.success
    assert "BinOpExpr" in caplog.text


def test_lexer_errors_are_diagnostics() -> None:
    compiler = Compiler.from_string('let s = "unterminated')
    parsed = compiler.compile()
    assert parsed.ast is None
    assert compiler.get_errors()[0].code == "GdmlSyntaxError"
    assert "Unterminated string" in compiler.get_errors()[0].info


def test_internal_errors_become_diagnostics(monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(*args: object, **kwargs: object) -> None:
        raise RuntimeError("state corrupted")

    monkeypatch.setattr(UnitParser, "parse", explode)
    compiler = Compiler.from_string("let x = 1")
    parsed = compiler.compile()
    errors = compiler.get_errors()
    assert len(errors) == 1
    assert errors[0].info == "Internal Compiler Error: state corrupted"
    assert errors[0].code == "InternalError"
    assert parsed.ast is None
    assert parsed.published


def test_from_file(tmp_path: Path) -> None:
    source = tmp_path / "ui.gdml"
    source.write_text("node Label { text: string }", encoding="utf-8")
    compiler = Compiler.from_file(source)
    assert compiler.src.name == str(source)
    assert compiler.compile().get_exported_types()[0].get_name() is not None
    assert compiler.success


def test_from_missing_file(tmp_path: Path) -> None:
    compiler = Compiler.from_file(tmp_path / "missing.gdml")
    errors = compiler.get_errors()
    assert [m.code for m in errors] == ["FileError"]
    assert errors[0].info.startswith("Unable to read file")
    assert compiler.compile().ast is None
    assert len(compiler.get_errors()) == 1


# Diagnostic checkpoints


def test_pop_messages_discards_since_checkpoint() -> None:
    compiler = Compiler.from_string("")
    compiler.log(message("before"))
    level = compiler.push_log_level()
    compiler.log(message("during"))
    compiler.log(message("also during", Level.WARNING))
    dropped = compiler.pop_messages(level)
    compiler.pop_log_level(level)
    assert [m.info for m in dropped] == ["during", "also during"]
    assert [m.info for m in compiler.get_messages()] == ["before"]


def test_rollback_count_invariant() -> None:
    compiler = Compiler.from_string("")
    compiler.log(message("a"))
    outer = compiler.push_log_level()
    compiler.log(message("b"))
    inner = compiler.push_log_level()
    compiler.log(message("c"))
    compiler.log(message("d"))
    assert len(compiler.pop_messages(inner)) == 2
    compiler.pop_log_level(inner)
    assert len(compiler.get_messages()) == 2
    assert len(compiler.pop_messages(outer)) == 1
    compiler.pop_log_level(outer)
    assert len(compiler.get_messages()) == 1


def test_tokens_increase_monotonically() -> None:
    compiler = Compiler.from_string("")
    first = compiler.push_log_level()
    compiler.pop_log_level(first)
    second = compiler.push_log_level()
    assert second > first


def test_checkpoints_must_nest() -> None:
    compiler = Compiler.from_string("")
    outer = compiler.push_log_level()
    compiler.push_log_level()
    with pytest.raises(InternalError, match="out of order"):
        compiler.pop_log_level(outer)


def test_pop_without_checkpoint() -> None:
    compiler = Compiler.from_string("")
    with pytest.raises(InternalError):
        compiler.pop_log_level()
    with pytest.raises(InternalError, match="not open"):
        compiler.pop_messages(7)


def test_warnings_do_not_fail_compilation() -> None:
    compiler = Compiler.from_string("")
    compiler.log(message("careful", Level.WARNING))
    assert compiler.success
    assert len(compiler.get_warnings()) == 1


def test_dispatch_logs(caplog: pytest.LogCaptureFixture) -> None:
    compiler = Compiler.from_string("let x = missing\nlet y = 1", name="main.gdml")
    compiler.compile()
    compiler.log(message("just so you know", Level.INFO))
    with caplog.at_level(logging.INFO, logger="gdml.gdml_compiler"):
        compiler.dispatch_logs()
    records = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert records[0][0] == logging.ERROR
    assert records[0][1].startswith("main.gdml:1:9: error: Unknown identifier")
    assert records[1] == (logging.INFO, "1:1: info: just so you know")
    assert records[-1] == (logging.ERROR, "Finished with 1 errors and 0 warnings")


def test_dispatch_logs_summary_on_success(caplog: pytest.LogCaptureFixture) -> None:
    compiler = Compiler.from_string("let y = 1")
    compiler.compile()
    with caplog.at_level(logging.INFO, logger="gdml.gdml_compiler"):
        compiler.dispatch_logs()
    assert [r.getMessage() for r in caplog.records] == ["Finished with 0 errors and 0 warnings"]
