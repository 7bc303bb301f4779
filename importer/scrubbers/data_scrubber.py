"""
Mask personally identifiable information in text columns
"""

import re
from typing import Any, Dict, List, Pattern, Tuple

from sqlalchemy import Enum, String
from sqlalchemy import inspect as sa_inspect

from core.exceptions import UnknownColumnError

# (pattern, replacement) pairs applied in order; replacements keep the shape
TEXT_SUBSTITUTIONS: List[Tuple[Pattern, str]] = [
    # social security numbers, dashed
    (re.compile(r"\d\d\d-\d\d-\d\d\d\d"), "###-##-####"),
    # nine digits not part of a longer number
    (re.compile(r"(^|\D)(\d{9})(?!\d)"), r"\1#########"),
]


def scrub_text(text: str) -> str:
    for pattern, replacement in TEXT_SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text


class DataScrubber:
    """
    Scrubs attribute maps bound for one destination model.

    Only text-typed columns (String, Text, Unicode, ...) are touched. A column
    missing from the model is an error, not a pass-through.
    """

    def __init__(self, model: Any):
        self.model = model
        mapper = sa_inspect(model)
        self.table_name = mapper.local_table.name
        column_types = {prop.key: prop.columns[0].type for prop in mapper.column_attrs}
        self.known_columns = frozenset(column_types)
        self.text_columns = frozenset(
            name for name, column_type in column_types.items()
            if isinstance(column_type, String) and not isinstance(column_type, Enum)
        )

    def scrub(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        """Scrub ``attrs`` in place and return it"""
        for name, value in attrs.items():
            if name not in self.known_columns:
                raise UnknownColumnError(
                    f"Column {name!r} not found",
                    context={"column": name, "table_name": self.table_name}
                )
            if name in self.text_columns and isinstance(value, str):
                attrs[name] = scrub_text(value)
        return attrs

    scrub_text = staticmethod(scrub_text)
