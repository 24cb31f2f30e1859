from hypothesis import given
from hypothesis import strategies as st

from gdml.gdml_paths import FullIdentPath, IdentPath

segment = st.from_regex(r"[a-z_][a-z0-9_]{0,6}", fullmatch=True)


def fp(text: str) -> FullIdentPath:
    return FullIdentPath(text.split("::")) if text else FullIdentPath(())


def test_parse_simple() -> None:
    path = IdentPath.parse("x")
    assert path == IdentPath("x")
    assert path.is_single()
    assert path.components() == ("x",)


def test_parse_qualified_and_absolute() -> None:
    path = IdentPath.parse("ui::widgets::Label")
    assert path.name == "Label"
    assert path.path == ("ui", "widgets")
    assert not path.absolute
    assert not path.is_single()

    root = IdentPath.parse("::x")
    assert root.absolute
    assert not root.is_single()
    assert str(root) == "::x"


def test_full_path_basics() -> None:
    path = fp("a::b")
    assert path.name == "b"
    assert path.parent() == fp("a")
    assert path.join("c") == fp("a::b::c")
    assert str(path) == "a::b"
    assert repr(path) == "FullIdentPath('a::b')"
    assert {path: 1}[FullIdentPath(["a", "b"])] == 1


def test_resolve_declaration_appends() -> None:
    base = fp("a::b")
    assert base.resolve(IdentPath("x"), existing=False) == fp("a::b::x")
    assert base.resolve(IdentPath.parse("c::x"), existing=False) == fp("a::b::c::x")


def test_resolve_absolute_ignores_base() -> None:
    base = fp("a::b")
    assert base.resolve(IdentPath.parse("::x"), existing=False) == fp("x")
    assert base.resolve(IdentPath.parse("::x"), existing=True, exists=lambda p: False) is None


def test_resolve_lookup_walks_upward() -> None:
    declared = {fp("a::x"), fp("y")}
    base = fp("a::b")
    assert base.resolve(IdentPath("x"), True, declared.__contains__) == fp("a::x")
    assert base.resolve(IdentPath("y"), True, declared.__contains__) == fp("y")
    assert base.resolve(IdentPath("z"), True, declared.__contains__) is None


def test_resolve_lookup_prefers_innermost() -> None:
    declared = {fp("a::b::x"), fp("a::x"), fp("x")}
    assert fp("a::b").resolve(IdentPath("x"), True, declared.__contains__) == fp("a::b::x")


def test_resolve_without_predicate_takes_first_candidate() -> None:
    assert fp("a").resolve(IdentPath("x"), existing=True) == fp("a::x")


def test_anchor() -> None:
    ns = fp("ui::widgets")
    assert ns.anchor(IdentPath.parse("widgets::Button")) == fp("ui::widgets::Button")
    assert ns.anchor(IdentPath.parse("other::Button")) is None
    assert ns.anchor(IdentPath("Button")) is None
    assert ns.anchor(IdentPath.parse("::widgets::Button")) is None


@given(st.lists(segment, min_size=1, max_size=5), st.booleans())  # type: ignore[misc]
def test_parse_str_round_trip(parts: list[str], absolute: bool) -> None:
    path = IdentPath(parts[-1], tuple(parts[:-1]), absolute)
    assert IdentPath.parse(str(path)) == path


@given(  # type: ignore[misc]
    st.lists(segment, max_size=4),
    st.lists(segment, min_size=1, max_size=3),
    st.sets(st.lists(segment, min_size=1, max_size=5).map(tuple)),
)
def test_resolve_is_deterministic(base: list[str], target: list[str], declared: set) -> None:
    exists = {FullIdentPath(d) for d in declared}.__contains__
    path = IdentPath(target[-1], tuple(target[:-1]))
    first = FullIdentPath(base).resolve(path, True, exists)
    second = FullIdentPath(base).resolve(path, True, exists)
    assert first == second
    if first is not None:
        assert exists(first)
