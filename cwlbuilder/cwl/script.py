from __future__ import annotations

import ast
import builtins
import inspect
import textwrap
from collections.abc import Callable, Iterable, MutableMapping, MutableSequence
from importlib.resources import files
from typing import Any

from jinja2 import Template

from cwlbuilder.core.exception import UnsupportedCapture
from cwlbuilder.cwl.types import CWLType

_BUILTINS = frozenset(dir(builtins))


def _get_bound_names(node: ast.AST) -> set[str]:
    bound = set()
    for child in ast.walk(node):
        match child:
            case ast.FunctionDef() | ast.AsyncFunctionDef():
                bound.add(child.name)
                args = child.args
                for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs]:
                    bound.add(arg.arg)
                if args.vararg:
                    bound.add(args.vararg.arg)
                if args.kwarg:
                    bound.add(args.kwarg.arg)
            case ast.Lambda():
                for arg in [*child.args.args, *child.args.kwonlyargs]:
                    bound.add(arg.arg)
            case ast.ClassDef():
                bound.add(child.name)
            case ast.Name(ctx=ast.Store() | ast.Del()):
                bound.add(child.id)
            case ast.ExceptHandler(name=str() as name):
                bound.add(name)
            case ast.Import() | ast.ImportFrom():
                for alias in child.names:
                    bound.add((alias.asname or alias.name).split(".")[0])
    return bound


def get_free_names(node: ast.AST) -> set[str]:
    loaded = {
        n.id
        for n in ast.walk(node)
        if isinstance(n, ast.Name) and isinstance(n.ctx, ast.Load)
    }
    return loaded - _get_bound_names(node) - _BUILTINS


def _get_function_node(source: str, where: str) -> ast.FunctionDef:
    try:
        tree = ast.parse(textwrap.dedent(source))
    except SyntaxError as e:
        raise UnsupportedCapture(f"Cannot parse the source of {where}: {e}") from e
    functions = [n for n in tree.body if isinstance(n, ast.FunctionDef)]
    if len(tree.body) != 1 or len(functions) != 1:
        raise UnsupportedCapture(
            f"The source of {where} must contain exactly one function definition"
        )
    node = functions[0]
    node.decorator_list = []
    return node


def _get_source(function: Callable | str, where: str) -> ast.FunctionDef:
    if isinstance(function, str):
        return _get_function_node(function, where)
    if getattr(function, "__name__", None) == "<lambda>":
        raise UnsupportedCapture(f"Cannot capture {where}: lambdas have no name")
    try:
        source = inspect.getsource(function)
    except (OSError, TypeError) as e:
        raise UnsupportedCapture(f"Cannot obtain the source of {where}: {e}") from e
    return _get_function_node(source, where)


def _save_literal(name: str, value: Any) -> str:
    text = repr(value)
    try:
        if ast.literal_eval(text) == value:
            return text
    except (SyntaxError, ValueError):
        pass
    raise UnsupportedCapture(
        f"Dependency `{name}` is neither a function nor a Python literal: {value!r}"
    )


class FunctionCommand:
    """
    A Python function used as the base command of a tool.

    The function source, the sources of the functions listed in ``dependencies`` and the
    ``imports`` statements are written into a standalone script, which receives each tool input
    as an ``id=value`` token. Every free name of the captured code must be a builtin, a name
    bound by ``imports`` or a key of ``dependencies``.
    """

    def __init__(
        self,
        function: Callable | str,
        name: str | None = None,
        dependencies: MutableMapping[str, Callable | Any] | None = None,
        imports: Iterable[str] | None = None,
        interpreter: str = "python3",
    ):
        self.node: ast.FunctionDef = _get_source(function, "the base command function")
        self.name: str = name or self.node.name
        self.dependencies: MutableMapping[str, Callable | Any] = dict(
            dependencies or {}
        )
        self.imports: MutableSequence[str] = [
            s if " " in s.strip() else f"import {s.strip()}" for s in imports or []
        ]
        self.interpreter: str = interpreter
        self._sources: MutableSequence[str] = []
        self._constants: MutableSequence[tuple[str, str]] = []
        self._resolve()

    def _resolve(self) -> None:
        imported = set()
        for statement in self.imports:
            try:
                imported |= _get_bound_names(ast.parse(statement))
            except SyntaxError as e:
                raise UnsupportedCapture(
                    f"Invalid import statement `{statement}`: {e}"
                ) from e
        available = imported | set(self.dependencies.keys())
        for name, value in self.dependencies.items():
            if inspect.isfunction(value) or isinstance(value, str) and _is_def(value):
                node = _get_source(value, f"dependency `{name}`")
                if node.name != name:
                    node.name = name
                self._check_free_names(node, available, f"dependency `{name}`")
                self._sources.append(ast.unparse(node))
            else:
                self._constants.append((name, _save_literal(name, value)))
        self._check_free_names(self.node, available, f"function `{self.node.name}`")
        self.node.name = self.name

    def _check_free_names(
        self, node: ast.FunctionDef, available: set[str], where: str
    ) -> None:
        if unresolved := sorted(get_free_names(node) - available - {node.name}):
            raise UnsupportedCapture(
                f"Cannot resolve names {unresolved} referenced by {where}: "
                "declare them as dependencies or imports"
            )

    @property
    def script_name(self) -> str:
        return f"{self.name}.py"

    def render(self, types: MutableMapping[str, CWLType]) -> str:
        template = Template(
            files(__package__)
            .joinpath("templates")
            .joinpath("function.py.jinja2")
            .read_text("utf-8"),
            keep_trailing_newline=True,
        )
        return template.render(
            imports=self.imports,
            constants=self._constants,
            sources=[*self._sources, ast.unparse(self.node)],
            types=repr({k: _get_type_name(t) for k, t in sorted(types.items())}),
            name=self.name,
        )


def _get_type_name(type_: CWLType) -> str | None:
    if type_.is_array and type_.items.name != "array":
        return f"{type_.items.name}[]"
    elif type_.name in ("array", "record", "Any"):
        return None
    return type_.name


def _is_def(text: str) -> bool:
    return text.lstrip().startswith("def ")
