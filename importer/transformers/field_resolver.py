"""
Resolve each destination column's instruction into a transformation rule.

Resolution runs once per column at engine setup. A rule is a small frozen
callable object: ``rule(record) -> value``. Precedence:

1. a source column name        -> CopySourceColumn
2. a callable                  -> Invoke
3. nothing, context method     -> InvokeNamedContextMethod
4. nothing, same-named column  -> PassthroughSameNamedAttribute
5. nothing at all              -> NullRule
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Dict, Optional, Union

from core.exceptions import ConfigurationError


@dataclass(frozen=True)
class CopySourceColumn:
    name: str

    def __call__(self, record: Any) -> Any:
        return getattr(record, self.name)


@dataclass(frozen=True)
class Invoke:
    function: Callable[[Any], Any]

    def __call__(self, record: Any) -> Any:
        return self.function(record)


@dataclass(frozen=True)
class InvokeNamedContextMethod:
    name: str
    method: Callable[[Any, Any], Any]
    context: Any = field(default=None, compare=False)

    def __call__(self, record: Any) -> Any:
        return self.method(self.context, record)


@dataclass(frozen=True)
class PassthroughSameNamedAttribute:
    name: str

    def __call__(self, record: Any) -> Any:
        return getattr(record, self.name)


@dataclass(frozen=True)
class NullRule:
    def __call__(self, record: Any) -> None:
        return None


TransformationRule = Union[
    CopySourceColumn,
    Invoke,
    InvokeNamedContextMethod,
    PassthroughSameNamedAttribute,
    NullRule,
]


class FieldResolver:
    """
    Turns (column, instruction) pairs into TransformationRules.

    Attributes:
        source_columns: Column names the source records carry
        context: Object passed as first argument to context methods
        context_methods: Explicitly registered name -> callable(context, record)
        source_attributes: Names readable on source records for copy rules;
            None disables the check (custom source queries)
    """

    def __init__(
        self,
        source_columns: Collection[str],
        context: Any = None,
        context_methods: Optional[Dict[str, Callable]] = None,
        source_attributes: Optional[Collection[str]] = None
    ):
        self.source_columns = frozenset(source_columns)
        self.context = context
        self.context_methods = dict(context_methods or {})
        self.source_attributes = (
            frozenset(source_attributes) if source_attributes is not None else None
        )

    def resolve(self, column: str, instruction: Any = None) -> TransformationRule:
        if isinstance(instruction, str):
            if self.source_attributes is not None and instruction not in self.source_attributes:
                raise ConfigurationError(
                    f"source has no column {instruction!r} to copy into {column!r}",
                    context={"column": column, "instruction": instruction}
                )
            return CopySourceColumn(instruction)

        if callable(instruction):
            return Invoke(instruction)

        if instruction is None:
            if column in self.context_methods:
                return InvokeNamedContextMethod(column, self.context_methods[column], self.context)
            if column in self.source_columns:
                return PassthroughSameNamedAttribute(column)
            return NullRule()

        raise ConfigurationError(
            f"unrecognized instruction for column {column!r}",
            context={"column": column, "instruction": repr(instruction)}
        )

    def resolve_all(self, transformations: Dict[str, Any]) -> Dict[str, TransformationRule]:
        return {
            column: self.resolve(column, instruction)
            for column, instruction in transformations.items()
        }
