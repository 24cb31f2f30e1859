import pytest

from gdml.gdml_compiler import Compiler
from gdml.gdml_diagnostics import (
    DuplicateEntity,
    GdmlSyntaxError,
    InternalError,
    Level,
    Message,
    Range,
    ResolutionError,
    UnknownNamespace,
)
from gdml.gdml_lexer import tokenize
from gdml.gdml_parser import TokenStream
from gdml.gdml_paths import FullIdentPath, IdentPath
from gdml.gdml_state import Fun, Namespace, ParsedSrc, Src, UnitParser, Var
from gdml.gdml_types import FunType, Primitive, StructType, Type

INT = Type.of(Primitive.INT)


def fp(text: str) -> FullIdentPath:
    return FullIdentPath(text.split("::"))


def ip(text: str) -> IdentPath:
    return IdentPath.parse(text)


def make_unit(dependencies: tuple[ParsedSrc, ...] = ()) -> UnitParser:
    compiler = Compiler.from_string("", name="<test>")
    return UnitParser(compiler, compiler.src, dependencies)


def struct(name: str) -> Type:
    return Type(StructType(fp(name), {}))


def test_root_scope_has_primitives() -> None:
    unit = make_unit()
    assert unit.is_root_scope()
    assert unit.get_type(ip("int")) == INT
    assert unit.get_type(ip("string")) == Type.of(Primitive.STR)
    assert unit.get_type(ip("nope")) is None


# Resolution


def test_single_declaration_resolves_into_named_scope() -> None:
    unit = make_unit()
    assert unit.resolve(ip("x"), existing=False) == fp("x")
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        assert unit.resolve(ip("x"), existing=False) == fp("ui::x")
        with unit.scope():
            assert unit.resolve(ip("x"), existing=False) == fp("ui::x")


def test_absolute_paths_resolve_from_root() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        assert unit.resolve(ip("::x"), existing=True) == fp("x")
        assert unit.resolve(ip("::a::x"), existing=False) == fp("a::x")


def test_lookup_walks_out_of_named_scopes() -> None:
    unit = make_unit()
    unit.push_type(struct("Point"))
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        unit.push_type(struct("ui::Label"))
        assert unit.resolve(ip("Label"), existing=True) == fp("ui::Label")
        assert unit.resolve(ip("Point"), existing=True) == fp("Point")


def test_lookup_through_namespace_entity() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    unit.push_namespace(Namespace(fp("ui::widgets")))
    unit.push_type(struct("ui::widgets::Button"))
    assert unit.resolve(ip("ui::widgets::Button"), existing=True) == fp("ui::widgets::Button")
    with unit.scope(ip("ui"), namespace=True):
        assert unit.resolve(ip("widgets::Button"), existing=True) == fp("ui::widgets::Button")


def test_lookup_does_not_anchor_through_nested_namespaces() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("a")))
    unit.push_namespace(Namespace(fp("a::b")))
    unit.push_var(Var(fp("a::b::x"), INT))
    with pytest.raises(UnknownNamespace, match='Unknown namespace "b"'):
        unit.resolve(ip("b::x"), existing=True)
    assert unit.resolve(ip("a::b::x"), existing=True) == fp("a::b::x")
    with unit.scope(ip("a"), namespace=True):
        assert unit.resolve(ip("b::x"), existing=True) == fp("a::b::x")


def test_qualified_declaration_inside_known_namespace() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    assert unit.resolve(ip("ui::Label"), existing=False) == fp("ui::Label")


def test_qualified_path_into_function_is_allowed() -> None:
    unit = make_unit()
    unit.push_fun(Fun(fp("f"), Type(FunType(fp("f"), []))))
    assert unit.resolve(ip("f::local"), existing=False) == fp("f::local")


def test_qualified_path_into_variable_is_rejected() -> None:
    unit = make_unit()
    unit.push_var(Var(fp("v"), INT))
    with pytest.raises(ResolutionError, match="non-namespace or function") as info:
        unit.resolve(ip("v::x"), existing=True, range=Range.at(3, 4))
    assert not isinstance(info.value, UnknownNamespace)
    assert info.value.range == Range.at(3, 4)
    assert "variable" in info.value.note


def test_unknown_namespace() -> None:
    unit = make_unit()
    with pytest.raises(UnknownNamespace, match='Unknown namespace "missing"'):
        unit.resolve(ip("missing::x"), existing=True)
    with pytest.raises(UnknownNamespace):
        unit.resolve(ip("missing::x"), existing=False)


def test_single_unknown_name_resolves_to_root_candidate_or_fails() -> None:
    unit = make_unit()
    with pytest.raises(UnknownNamespace):
        unit.resolve(ip("nothing"), existing=True)
    assert unit.get_entity(ip("int")) == (fp("int"), INT)


# Declarations and scopes


def test_duplicate_in_same_scope() -> None:
    unit = make_unit()
    unit.push_var(Var(unit.verify_can_push(ip("x")), INT))
    with pytest.raises(DuplicateEntity, match='"x" already exists') as info:
        unit.verify_can_push(ip("x"))
    assert "variable" in info.value.note
    assert unit.find_declared(fp("x")) == Var(fp("x"), INT)


def test_shadowing_outer_scope_is_allowed() -> None:
    unit = make_unit()
    unit.push_var(Var(fp("x"), INT))
    with unit.scope():
        assert unit.verify_can_push(ip("x")) == fp("x")
        assert unit.find_declared(fp("x")) is None
        unit.push_var(Var(fp("x"), Type.of(Primitive.STR)))
        assert unit.get_var(ip("x")) == Var(fp("x"), Type.of(Primitive.STR))
    assert unit.get_var(ip("x")) == Var(fp("x"), INT)


def test_namespace_body_checks_merge_target() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        unit.push_type(struct("ui::Label"))
    with unit.scope(ip("ui"), namespace=True):
        with pytest.raises(DuplicateEntity):
            unit.verify_can_push(ip("Label"))


def test_namespace_scope_merges_into_parent() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        unit.push_type(struct("ui::Label"))
    assert fp("ui::Label") in unit.scopes[-1]
    assert unit.get_type(ip("ui::Label")) == struct("ui::Label")


def test_plain_scope_discards_entities() -> None:
    unit = make_unit()
    with unit.scope():
        unit.push_var(Var(fp("tmp"), INT))
    assert not unit.exists(fp("tmp"))


def test_top_only_lookup() -> None:
    unit = make_unit()
    unit.push_var(Var(fp("x"), INT))
    with unit.scope():
        assert unit.get_entity(ip("x"), top_only=True) is None
        assert unit.get_entity(ip("x")) == (fp("x"), Var(fp("x"), INT))


def test_popping_root_is_an_internal_error() -> None:
    unit = make_unit()
    with pytest.raises(InternalError, match="root scope"):
        unit.pop_scope()


def test_scope_bases_follow_nearest_named_scope() -> None:
    unit = make_unit()
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        with unit.scope():
            assert unit.scope_bases() == [FullIdentPath(()), fp("ui"), fp("ui")]


def test_function_and_export_scopes() -> None:
    unit = make_unit()
    assert unit.function_scope() is None
    assert unit.is_export_level()
    unit.push_namespace(Namespace(fp("ui")))
    with unit.scope(ip("ui"), namespace=True):
        assert unit.is_export_level()
        with unit.scope(ip("f"), function=True, return_type=INT) as body:
            assert unit.function_scope() is body
            assert body.return_type == INT
            assert not unit.is_export_level()


def test_anonymous_type_cannot_be_registered() -> None:
    unit = make_unit()
    with pytest.raises(InternalError):
        unit.push_type(Type(StructType(None, {})))


# Dependencies


def test_dependency_exports_are_visible_with_their_namespaces() -> None:
    dep = ParsedSrc(Src("dep.gdml", ""), None)
    dep.add_exported_type(struct("ui::widgets::Button"))
    dep.publish()
    unit = make_unit((dep,))
    assert unit.get_type(ip("ui::widgets::Button")) == struct("ui::widgets::Button")
    assert isinstance(unit.get_entity(ip("ui"))[1], Namespace)  # type: ignore[index]
    assert isinstance(unit.get_entity(ip("ui::widgets"))[1], Namespace)  # type: ignore[index]


# Speculation


def test_speculation_rolls_back_messages_and_tokens() -> None:
    unit = make_unit()
    stream = TokenStream(tokenize("a b c"))
    unit.warn(Range.at(1, 1), "kept")
    with unit.speculate(stream) as attempt:
        stream.advance()
        unit.error(Range.at(1, 3), "dropped")
        raise GdmlSyntaxError("nope", Range.at(1, 3))
    assert attempt.failed
    assert attempt.error is not None and attempt.error.message == "nope"
    assert stream.current().value == "a"
    assert [m.info for m in unit.compiler.get_messages()] == ["kept"]
    assert unit.compiler._levels == []


def test_successful_speculation_keeps_messages() -> None:
    unit = make_unit()
    stream = TokenStream(tokenize("a b"))
    with unit.speculate(stream) as attempt:
        stream.advance()
        unit.warn(Range.at(1, 1), "kept")
    assert not attempt.failed
    assert stream.current().value == "b"
    assert len(unit.compiler.get_warnings()) == 1


def test_nested_speculation_only_drops_inner_messages() -> None:
    unit = make_unit()
    stream = TokenStream(tokenize("a b c"))
    with unit.speculate(stream) as outer:
        unit.warn(Range.at(1, 1), "outer")
        with unit.speculate(stream) as inner:
            unit.warn(Range.at(1, 2), "inner")
            raise GdmlSyntaxError("inner failed")
    assert inner.failed and not outer.failed
    assert [m.info for m in unit.compiler.get_messages()] == ["outer"]


def test_other_errors_propagate_out_of_speculation() -> None:
    unit = make_unit()
    stream = TokenStream(tokenize("a"))
    with pytest.raises(ValueError):
        with unit.speculate(stream):
            raise ValueError("boom")
    assert unit.compiler._levels == []


def test_messages_are_tagged_with_source_name() -> None:
    unit = make_unit()
    unit.log(Message(Level.INFO, "hello", Range.at(1, 1)))
    assert unit.compiler.get_messages()[0].range.src == "<test>"
    unit.log_error(ValueError("plain"))
    assert unit.compiler.get_errors()[0].info == "plain"


# ParsedSrc


def test_parsed_src_exports() -> None:
    parsed = ParsedSrc(Src("a.gdml", ""), None)
    assert parsed.add_exported_type(struct("A"))
    assert not parsed.add_exported_type(struct("A"))
    assert not parsed.add_exported_type(Type(StructType(None, {})))
    assert not parsed.add_exported_type(INT)
    assert parsed.get_exported_type(fp("A")) == struct("A")
    assert parsed.get_exported_types() == [struct("A")]
    with pytest.raises(TypeError):
        parsed.exported_types[fp("B")] = struct("B")  # type: ignore[index]


def test_published_unit_is_read_only() -> None:
    parsed = ParsedSrc(Src("a.gdml", ""), None)
    parsed.publish()
    assert parsed.published
    with pytest.raises(InternalError, match="already published"):
        parsed.add_exported_type(struct("A"))
