"""
Filter Compiler for apiflow.

Filters are jq programs (https://jqlang.github.io/jq/) compiled with the
`jq` bindings. A program is compiled once per distinct expression text and
reused for every run of the spec that owns it.

External Variables:
    jq resolves `$name` references at compile time, so binding a value by
    recompiling would defeat the cache. Instead, every expression compiled
    with `bind_vars=True` is wrapped once, using the names the compiler was
    given up front:

        . as [$__vars, $__input]
        | $__vars as {$city, $units}
        | $__input
        | (<expression>)

    and every run feeds `[variables, payload]` as the program input.
    Rebinding values is then just a different input value.

Usage:
    compiler = FilterCompiler(variable_names=["city"])
    program = compiler.compile(".list[0] | .name + $city", bind_vars=True)

    result = program.first({"list": [{"name": "x"}]}, {"city": "Oslo"})
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

import jq

from .errors import CompileError, FilterRuntimeError, UnboundVariableError

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UNDEFINED_VARIABLE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*) is not defined")

# Reserved words that cannot follow `$` in a jq pattern
_JQ_KEYWORDS = frozenset(
    {
        "__loc__",
        "and",
        "as",
        "catch",
        "def",
        "elif",
        "else",
        "end",
        "foreach",
        "if",
        "import",
        "include",
        "label",
        "or",
        "reduce",
        "then",
        "try",
    }
)

_VARS = "$__vars"
_INPUT = "$__input"


def bindable_names(names: Iterable[str]) -> tuple[str, ...]:
    """Filter names down to those usable as jq variables, sorted and unique."""
    accepted: set[str] = set()
    for name in names:
        if _IDENTIFIER.match(name) and name not in _JQ_KEYWORDS and not name.startswith("__"):
            accepted.add(name)
        else:
            logger.warning(f"[filters] Skipping variable not bindable in jq: {name!r}")
    return tuple(sorted(accepted))


class CompiledFilter:
    """
    A compiled jq program, optionally accepting external variables.

    `variable_names=None` compiles the expression as written. A tuple,
    even an empty one, compiles it as a variable-binding program: a `$name`
    outside that tuple is then an UnboundVariableError, since the caller
    is the one who did not supply it.

    Instances are immutable and safe to share between concurrent runs.
    """

    __slots__ = ("_expression", "_variable_names", "_program")

    def __init__(self, expression: str, variable_names: tuple[str, ...] | None = None):
        self._expression = expression
        self._variable_names = variable_names

        try:
            self._program = jq.compile(self._wrap(expression, variable_names or ()))
        except ValueError as e:
            message = str(e).strip()
            undefined = _UNDEFINED_VARIABLE.search(message)
            if variable_names is not None and undefined:
                raise UnboundVariableError(
                    f"variable ${undefined.group(1)} not provided",
                    expression=expression,
                    variable=undefined.group(1),
                ) from e
            raise CompileError(message, expression=expression) from e

    @staticmethod
    def _wrap(expression: str, variable_names: tuple[str, ...]) -> str:
        if not variable_names:
            return expression

        pattern = ", ".join(f"${name}" for name in variable_names)
        # Newline before the closing paren keeps trailing `#` comments harmless
        return (
            f". as [{_VARS}, {_INPUT}] "
            f"| {_VARS} as {{{pattern}}} "
            f"| {_INPUT} "
            f"| (\n{expression}\n)"
        )

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def binds_variables(self) -> bool:
        return self._variable_names is not None

    @property
    def variable_names(self) -> tuple[str, ...]:
        return self._variable_names or ()

    def first(
        self,
        value: Any,
        variables: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Run the program and return its first result.

        Remaining results are never computed. A program that produces
        nothing yields None.

        Raises:
            FilterRuntimeError: If jq reports an error for the first result
        """
        if self._variable_names:
            bound = {name: (variables or {}).get(name) for name in self._variable_names}
            value = [bound, value]

        try:
            return next(iter(self._program.input_value(value)), None)
        except ValueError as e:
            raise FilterRuntimeError(str(e).strip()) from e

    def __repr__(self) -> str:
        return f"CompiledFilter({self._expression!r}, vars={self._variable_names!r})"


class FilterCompiler:
    """
    Compiles filter expressions and caches them.

    The cache key is the expression text plus whether the program binds
    external variables, so the same text used with and without `bindVars`
    compiles to two programs.

    One compiler belongs to one prepared Spec. It is filled while the spec
    is prepared; `programs` exposes the finished cache read-only.
    """

    def __init__(self, variable_names: Iterable[str] = ()):
        self._variable_names = bindable_names(variable_names)
        self._cache: dict[tuple[str, bool], CompiledFilter] = {}

    @property
    def variable_names(self) -> tuple[str, ...]:
        return self._variable_names

    def compile(self, expression: str, *, bind_vars: bool = False) -> CompiledFilter:
        """
        Compile an expression, returning the cached program when seen before.

        Raises:
            CompileError: If the expression is empty or malformed
            UnboundVariableError: If a binding program uses a name the
                compiler was not given
        """
        key = (expression, bind_vars)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if not expression.strip():
            raise CompileError("empty filter expression", expression=expression)

        program = CompiledFilter(expression, self._variable_names if bind_vars else None)
        self._cache[key] = program
        logger.debug(f"[filters] Compiled {expression!r} (bind_vars={bind_vars})")
        return program

    @property
    def programs(self) -> Mapping[tuple[str, bool], CompiledFilter]:
        return MappingProxyType(self._cache)

    def __len__(self) -> int:
        return len(self._cache)
