"""
GDML CLI Entrypoint.

This module provides the command-line interface for compiling GDML source code.

Features:
    - Read source from `.gdml` files or inline strings.
    - Compile dependency units first so their exported types are visible.
    - Lex, parse and typecheck, reporting every diagnostic through `logging`.
    - Transpile successfully compiled units to C++.
    - Output to console or file.

Example usage:
    gdml ui.gdml
    gdml -s "node Label { text: string }" --ast
    gdml app.gdml -d widgets.gdml -o app.hpp -p

Functions:
    run_gdml(source: str, is_string: bool = False, target: str = "cpp", out: Optional[str] = None,
             pretty: bool = False, show_ast: bool = False, dependencies: Sequence[str] = ()) -> int:
        Executes the full GDML pipeline (lex → parse → typecheck → transpile → output).

    main(argv: Optional[list[str]] = None) -> int:
        Parses CLI arguments and runs the pipeline; returns the process exit status.
"""

import argparse
import logging
import sys
from collections.abc import Sequence

from gdml.gdml_compiler import Compiler
from gdml.gdml_constants import SOURCE_EXTENSION
from gdml.gdml_state import ParsedSrc
from gdml.gdml_transpile import Transpiler

logger = logging.getLogger(__name__)


def run_gdml(
    source: str,
    is_string: bool = False,
    target: str = "cpp",
    out: str | None = None,
    pretty: bool = False,
    show_ast: bool = False,
    dependencies: Sequence[str] = (),
) -> int:
    """
    Run the GDML toolchain: compile, report diagnostics, then transpile and write output.

    Args:
        source (str): The GDML source code or path to a `.gdml` file.
        is_string (bool): If True, treats `source` as raw code instead of a file path.
        target (str): Transpilation target language. Defaults to 'cpp'.
        out (str | None): Optional path to write the transpiled output. If None, prints to stdout.
        pretty (bool): If True, emits indented multi-line code. Defaults to False.
        show_ast (bool): If True, prints the AST dump before the generated code.
        dependencies (Sequence[str]): Paths of `.gdml` files whose exported types are imported.

    Returns:
        int: 0 on success, 1 if any unit had errors.

    Raises:
        ValueError: If `is_string` is False and the source does not end with '.gdml'.
    """
    for path in [*dependencies, *([] if is_string else [source])]:
        if not path.endswith(SOURCE_EXTENSION):
            raise ValueError(f"Only {SOURCE_EXTENSION} files are supported: {path}")

    # 1. Dependencies
    deps: list[ParsedSrc] = []
    for path in dependencies:
        dep = Compiler.from_file(path, deps)
        parsed = dep.compile()
        dep.dispatch_logs()
        if not dep.success:
            logger.error("Dependency %s failed to compile", path)
            return 1
        deps.append(parsed)

    # 2. Compile the main unit
    compiler = (
        Compiler.from_string(source, dependencies=deps)
        if is_string
        else Compiler.from_file(source, deps)
    )
    parsed = compiler.compile()
    compiler.dispatch_logs()

    if show_ast and parsed.ast is not None:
        print(parsed.ast.debug())

    if not compiler.success or parsed.ast is None:
        return 1

    # 3. Transpiling
    code = Transpiler(target, pretty=pretty).transpile(parsed.ast)

    # 4. Output result
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(code)
        logger.info("Wrote %s", out)
    else:
        print(code)
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Entry point for the GDML CLI.

    Supported flags:
        - `-s`, `--string`: Interpret source as a raw string instead of a file path.
        - `-t`, `--target`: Transpilation target, default is 'cpp'.
        - `-o`, `--out`: Write transpiled output to a file.
        - `-p`, `--pretty`: Emit indented, multi-line code.
        - `-d`, `--dep`: Compile a dependency unit first (repeatable).
        - `--ast`: Print the parsed AST.
        - `--verbose`: Log debug output from every compiler stage.
    """
    parser = argparse.ArgumentParser(prog="gdml")
    parser.add_argument("source", help="Filename or raw source (with -s)")
    parser.add_argument(
        "-s", "--string", action="store_true", help="Interpret source as literal string"
    )
    parser.add_argument(
        "-t",
        "--target",
        choices=("cpp",),
        default="cpp",
        help="Transpile target (default: cpp)",
    )
    parser.add_argument("-o", "--out", metavar="OUTFILE", help="Output to file")
    parser.add_argument(
        "-p", "--pretty", action="store_true", help="Indent the generated code"
    )
    parser.add_argument(
        "-d",
        "--dep",
        dest="dependencies",
        action="append",
        default=[],
        metavar="FILE",
        help="Compile FILE first and import its exported types",
    )
    parser.add_argument("--ast", dest="show_ast", action="store_true", help="Print the AST")
    parser.add_argument("--verbose", action="store_true", help="Verbose compiler logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        return run_gdml(
            source=args.source,
            is_string=args.string,
            target=args.target,
            out=args.out,
            pretty=args.pretty,
            show_ast=args.show_ast,
            dependencies=args.dependencies,
        )
    except ValueError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
