"""
Provides the `Transpiler` class and emitter interface for lowering GDML ASTs into code.

Classes and Features:
    - Emitter (Protocol): Interface for all backend emitters. Requires `__init__` and `get_output`.
    - CppEmitter: Concrete emitter that writes C++ declarations and node construction code.
    - Transpiler: Uses the emitter for the selected target (e.g., "cpp") and dispatches
      top-level AST nodes to the corresponding `emit_*` methods.

Usage:
    The Transpiler takes a typechecked `AST` (or a list of top-level nodes) and returns
    code in the desired output language.

Example:
    >>> transpiler = Transpiler("cpp", pretty=False)
    >>> output_code = transpiler.transpile(parsed.ast)

Raises:
    ValueError: If the target language is not supported.
    TypeError: If the AST contains invalid node types.
    NotImplementedError: If the emitter lacks an `emit_*` method for a node kind.
"""

from typing import Protocol

from gdml.emitters.cpp_emitter import CppEmitter
from gdml.gdml_ast import AST, ASTNode


class Emitter(Protocol):  # pragma: no cover
    """Protocol for all GDML emitters.

    Methods:
        __init__(pretty): Initializes the emitter.
        get_output(): Returns the complete emitted code as a string.
    """

    def __init__(self, pretty: bool = True) -> None: ...  # pragma: no cover

    def get_output(self) -> str: ...  # pragma: no cover


EmitterType = type[Emitter]
"""Alias for a concrete Emitter class type."""


class Transpiler:
    """Dispatches GDML AST nodes to the emitter for an output target.

    Attributes:
        emitter (Emitter): The selected emitter instance for the output target.
    """

    def __init__(self, target: str = "cpp", pretty: bool = True) -> None:
        """Initializes the transpiler with the desired output target.

        Args:
            target: The desired output language ("cpp" or "c++").
            pretty: Indent the output and keep one statement per line.

        Raises:
            ValueError: If the target language is not supported.
        """
        emitters: dict[str, EmitterType] = {
            "cpp": CppEmitter,
            "c++": CppEmitter,
        }
        target = target.lower()
        if target not in emitters:
            raise ValueError(f"Unknown transpilation target: {target!r}")
        self.emitter: Emitter = emitters[target](pretty=pretty)

    def transpile(self, ast: AST | list[ASTNode]) -> str:
        """Transpiles a unit into source code for the selected target.

        Args:
            ast: The root `AST` node, or a list of its top-level nodes.

        Returns:
            The emitted source code as a string.

        Raises:
            TypeError: If any top-level element is not an ASTNode.
        """
        nodes = ast.exprs if isinstance(ast, AST) else ast
        if not all(isinstance(node, ASTNode) for node in nodes):
            raise TypeError("All items in AST must be ASTNode instances.")
        for node in nodes:
            self._visit(node)
        return self.emitter.get_output()

    def _visit(self, node: ASTNode) -> None:
        """Invokes the appropriate emit method on the emitter for a given AST node.

        Raises:
            NotImplementedError: If the emitter does not support the node kind.
        """
        method_name = f"emit_{node.kind}"
        if hasattr(self.emitter, method_name):
            emit_method = getattr(self.emitter, method_name)
            emit_method(node)
        else:
            raise NotImplementedError(
                f"No emitter method for node kind '{node.kind}' (at {node.range})"
            )
