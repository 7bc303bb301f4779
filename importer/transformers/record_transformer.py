"""
Transform individual source records into destination attribute maps
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from core.exceptions import TransformationError
from importer.config import ColumnOptions
from importer.transformers.field_resolver import TransformationRule
import logging

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    """None, a whitespace-only string, or an empty collection"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return not value
    return False


@dataclass(frozen=True)
class Rejected:
    """Transform outcome for a record whose required column came out blank"""
    column: str
    message: str = "can't be blank"

    def __bool__(self) -> bool:
        return False


class RecordTransformer:
    """
    Applies every column's resolved rule to a source record.

    Rules are resolved once, before the first batch, so per record only the
    rule calls, the required check and the try chain run.
    """

    def __init__(
        self,
        rules: Mapping[str, TransformationRule],
        options: Optional[Mapping[str, ColumnOptions]] = None
    ):
        self.rules = MappingProxyType(dict(rules))
        self.options = MappingProxyType(dict(options or {}))

    @property
    def columns(self) -> List[str]:
        return list(self.rules.keys())

    def transform(self, record: Any) -> Union[Dict[str, Any], Rejected]:
        """
        Build the attribute map for one record.

        Returns:
            Attributes keyed by destination column, or Rejected naming the
            first required column that came out blank. Nothing partial is
            ever returned for a rejected record.
        """
        output: Dict[str, Any] = {}

        for column, rule in self.rules.items():
            value = self._call_rule(column, rule, record)
            column_options = self.options.get(column)

            if column_options is None:
                output[column] = value
                continue

            if column_options.required and is_blank(value):
                logger.debug(f"Rejected record: required column {column!r} is blank")
                return Rejected(column)

            output[column] = self._apply_try_chain(column_options, value)

        return output

    def evaluate_column(self, column: str, record: Any) -> Any:
        """Raw rule output for one column (no required check, no try chain)"""
        return self._call_rule(column, self.rules[column], record)

    def evaluate_column_for_all(self, column: str, records: List[Any]) -> List[Any]:
        rule = self.rules[column]
        return [self._call_rule(column, rule, record) for record in records]

    @staticmethod
    def _apply_try_chain(column_options: ColumnOptions, value: Any) -> Any:
        for name in column_options.try_chain:
            operation = getattr(value, name, None)
            if callable(operation):
                value = operation()
        return value

    @staticmethod
    def _call_rule(column: str, rule: TransformationRule, record: Any) -> Any:
        try:
            return rule(record)
        except Exception as e:
            raise TransformationError(
                f"Failed to compute column {column!r}",
                context={"column": column, "rule": type(rule).__name__},
                original_exception=e
            )
