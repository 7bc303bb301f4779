from importer.transformers.field_resolver import (
    FieldResolver,
    TransformationRule,
    CopySourceColumn,
    Invoke,
    InvokeNamedContextMethod,
    PassthroughSameNamedAttribute,
    NullRule,
)
from importer.transformers.record_transformer import RecordTransformer, Rejected, is_blank

__all__ = [
    "FieldResolver",
    "TransformationRule",
    "CopySourceColumn",
    "Invoke",
    "InvokeNamedContextMethod",
    "PassthroughSameNamedAttribute",
    "NullRule",
    "RecordTransformer",
    "Rejected",
    "is_blank",
]
