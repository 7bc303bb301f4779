"""
Import configuration: an immutable settings object and the builder that makes it.

Every recognized option is a field on ImportConfig and a setter on
ImportConfigBuilder. The builder validates everything in build(), so a
misconfigured importer fails before any database work starts.

    config = (
        ImportConfigBuilder()
        .transform(from_=LegacyPerson, to=Person)
        .map_attribute("ssn")
        .map_attribute("name", "fullname")
        .map_attribute("email", required=True, try_chain=["strip", "lower"])
        .update_on("external_id")
        .source_order_by("updated_at")
        .batch_size(500)
        .build()
    )
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from core.config import settings
from core.exceptions import ConfigurationError, UnknownCallbackError
from importer.callbacks import CALLBACKS


class ColumnOptions(BaseModel):
    """Per destination column options"""

    # reject the whole record when this column comes out blank
    required: bool = False
    # names of zero-argument methods applied in order, when the value has them
    try_chain: Tuple[str, ...] = ()

    @field_validator("try_chain", mode="before")
    @classmethod
    def wrap_single_name(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return tuple(v)

    class Config:
        frozen = True


class ImportConfig(BaseModel):
    """
    Immutable settings for one importer.

    Built once, passed into the engine, never mutated during a run.
    """

    # the model corresponding to the source table to be imported
    source_model: Any = None
    # the model corresponding to the destination table to be populated
    destination_model: Any = None
    # destination column -> instruction (source column name, callable or None)
    transformations: Dict[str, Any] = Field(default_factory=dict)
    # destination column -> ColumnOptions
    transformation_options: Dict[str, ColumnOptions] = Field(default_factory=dict)
    # destination column used as a key to update existing rows instead of inserting
    update_on: Optional[str] = None
    # source column giving the import a stable ordering; also the watermark column
    source_order_by: Optional[str] = None
    # destination column holding values copied from source_order_by
    destination_order_by: Optional[str] = None
    # fixed equality conditions narrowing the watermark lookup
    destination_order_conditions: Dict[str, Any] = Field(default_factory=dict)
    # import the whole table, ignoring the watermark
    force_full_update: bool = False
    # if false, only update existing rows
    create_new_records: bool = True
    batch_size: int = Field(default_factory=lambda: settings.IMPORT_BATCH_SIZE)
    # if false, run the whole pipeline without writing to destination
    use_db: bool = True
    # validate rows before inserting them
    validate_rows: bool = True
    # optional callable returning the base Select; disables ordering and watermark
    source_query: Optional[Callable[[], Any]] = None
    # column -> value equality filters, or a sequence of SQL expressions
    source_conditions: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict)
    pool_size: int = Field(default_factory=lambda: settings.IMPORT_POOL_SIZE)
    # restrict the source query to these columns
    source_select_columns: Optional[Tuple[str, ...]] = None
    # hook name -> callable(context, *args)
    callbacks: Dict[str, Callable] = Field(default_factory=dict)
    # destination column -> callable(context, record), used for bare column mappings
    context_methods: Dict[str, Callable] = Field(default_factory=dict)
    # optional pydantic model every new row must satisfy
    destination_schema: Optional[Any] = None

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    @field_validator("batch_size", "pool_size")
    @classmethod
    def positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("callbacks")
    @classmethod
    def known_callbacks(cls, v):
        for name in v:
            if name not in CALLBACKS:
                raise ValueError(f"unknown callback name: {name}")
        return v

    @model_validator(mode="after")
    def check_models_and_columns(self):
        if self.source_model is None or self.destination_model is None:
            raise ValueError("you must provide both source (from) and destination (to) models")
        if not self.transformations:
            raise ValueError("you must map at least one destination column")
        if self.update_on and self.update_on not in self.transformations:
            raise ValueError(f"update_on column {self.update_on!r} is not a mapped column")
        if self.update_on and self.options_for(self.update_on).try_chain:
            # existing rows are looked up by the raw key
            raise ValueError(f"update_on column {self.update_on!r} cannot have a try_chain")
        return self

    @property
    def columns(self) -> List[str]:
        """Destination columns, in mapping order"""
        return list(self.transformations.keys())

    @property
    def watermark_column(self) -> Optional[str]:
        return self.destination_order_by or self.source_order_by

    def options_for(self, column: str) -> ColumnOptions:
        return self.transformation_options.get(column) or ColumnOptions()


# ImportConfig fields the builder assembles from its own setters
BUILDER_COLLECTIONS = frozenset({
    "transformations",
    "transformation_options",
    "callbacks",
    "context_methods",
})


class ImportConfigBuilder:
    """One setter per option; build() returns a validated ImportConfig"""

    def __init__(self):
        self._settings: Dict[str, Any] = {}
        self._transformations: Dict[str, Any] = {}
        self._transformation_options: Dict[str, ColumnOptions] = {}
        self._callbacks: Dict[str, Callable] = {}
        self._context_methods: Dict[str, Callable] = {}

    # ------------------------------------------------------------------
    # models and columns
    # ------------------------------------------------------------------

    def transform(self, from_: Any = None, to: Any = None) -> "ImportConfigBuilder":
        """Define what is imported into what"""
        if from_ is None or to is None:
            raise ConfigurationError(
                "you must provide both source (from) and destination (to) models",
                context={"option": "transform"}
            )
        self._settings["source_model"] = from_
        self._settings["destination_model"] = to
        return self

    def map_attribute(
        self,
        *args: Any,
        required: bool = False,
        try_chain: Optional[Union[str, Sequence[str]]] = None
    ) -> "ImportConfigBuilder":
        """
        Map one destination column. Permissible forms:

        - ``(dest)``: resolved at setup to a registered context method of
          the same name, else a same-named source column, else None
        - ``(dest, fn)`` or ``(fn, dest)``: ``fn(record)`` gives the value
        - ``(source, dest)``: copy the source column verbatim
        """
        if len(args) == 1:
            dest, instruction = args[0], None
        elif len(args) == 2:
            first, last = args
            if isinstance(first, str) and callable(last):
                dest, instruction = first, last
            elif callable(first) and isinstance(last, str):
                dest, instruction = last, first
            elif isinstance(first, str) and isinstance(last, str):
                dest, instruction = last, first
            else:
                raise ConfigurationError(
                    "cannot tell which argument is the destination column",
                    context={"option": "map_attribute", "arguments": repr(args)}
                )
        else:
            raise ConfigurationError(
                f"map_attribute takes one or two positional arguments, got {len(args)}",
                context={"option": "map_attribute", "arguments": repr(args)}
            )

        if not isinstance(dest, str):
            raise ConfigurationError(
                "destination column must be a string",
                context={"option": "map_attribute", "column": repr(dest)}
            )

        self._transformations[dest] = instruction
        self._transformation_options[dest] = ColumnOptions(required=required, try_chain=try_chain)
        return self

    def context_method(self, name: str, body: Callable) -> "ImportConfigBuilder":
        """Register ``body(context, record)`` as the source of column ``name``"""
        if not callable(body):
            raise ConfigurationError(
                "context method must be callable",
                context={"option": "context_method", "column": name}
            )
        self._context_methods[name] = body
        return self

    # ------------------------------------------------------------------
    # scalar options
    # ------------------------------------------------------------------

    def update_on(self, column: str) -> "ImportConfigBuilder":
        self._settings["update_on"] = column
        return self

    def source_order_by(self, column: str) -> "ImportConfigBuilder":
        self._settings["source_order_by"] = column
        return self

    def destination_order_by(self, column: str) -> "ImportConfigBuilder":
        self._settings["destination_order_by"] = column
        return self

    def destination_order_conditions(self, conditions: Dict[str, Any]) -> "ImportConfigBuilder":
        self._settings["destination_order_conditions"] = dict(conditions)
        return self

    def force_full_update(self, enabled: bool = True) -> "ImportConfigBuilder":
        self._settings["force_full_update"] = enabled
        return self

    def create_new_records(self, enabled: bool = True) -> "ImportConfigBuilder":
        self._settings["create_new_records"] = enabled
        return self

    def batch_size(self, size: int) -> "ImportConfigBuilder":
        self._settings["batch_size"] = size
        return self

    def use_db(self, enabled: bool = True) -> "ImportConfigBuilder":
        self._settings["use_db"] = enabled
        return self

    def validate_rows(self, enabled: bool = True) -> "ImportConfigBuilder":
        self._settings["validate_rows"] = enabled
        return self

    def source_query(self, query_factory: Callable[[], Any]) -> "ImportConfigBuilder":
        self._settings["source_query"] = query_factory
        return self

    def source_conditions(self, conditions: Union[Dict[str, Any], List[Any]]) -> "ImportConfigBuilder":
        self._settings["source_conditions"] = conditions
        return self

    def pool_size(self, size: int) -> "ImportConfigBuilder":
        self._settings["pool_size"] = size
        return self

    def source_select_columns(self, *columns: str) -> "ImportConfigBuilder":
        self._settings["source_select_columns"] = tuple(columns)
        return self

    def destination_schema(self, schema: Any) -> "ImportConfigBuilder":
        self._settings["destination_schema"] = schema
        return self

    def options(self, **opts: Any) -> "ImportConfigBuilder":
        """Set several scalar options at once"""
        unknown = set(opts) - set(ImportConfig.model_fields)
        if unknown:
            raise ConfigurationError(
                f"unknown options: {', '.join(sorted(unknown))}",
                context={"option": "options"}
            )
        collections = set(opts) & BUILDER_COLLECTIONS
        if collections:
            raise ConfigurationError(
                f"set {', '.join(sorted(collections))} through map_attribute, callback or context_method",
                context={"option": "options"}
            )
        self._settings.update(opts)
        return self

    # ------------------------------------------------------------------
    # callbacks
    # ------------------------------------------------------------------

    def callback(self, name: str, body: Callable) -> "ImportConfigBuilder":
        if name not in CALLBACKS:
            raise UnknownCallbackError(
                f"unknown callback name: {name}",
                context={"callback": name, "known_callbacks": ", ".join(CALLBACKS)}
            )
        if not callable(body):
            raise ConfigurationError(
                "callback must be callable",
                context={"callback": name}
            )
        self._callbacks[name] = body
        return self

    def before_run(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("before_run", body)

    def before_each_batch(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("before_each_batch", body)

    def reject(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("reject", body)

    def before_each(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("before_each", body)

    def each_before_save(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("each_before_save", body)

    def reject_after_transform(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("reject_after_transform", body)

    def after_each(self, body: Callable) -> "ImportConfigBuilder":
        return self.callback("after_each", body)

    # ------------------------------------------------------------------

    def build(self) -> ImportConfig:
        try:
            return ImportConfig(
                **self._settings,
                transformations=dict(self._transformations),
                transformation_options=dict(self._transformation_options),
                callbacks=dict(self._callbacks),
                context_methods=dict(self._context_methods),
            )
        except ValidationError as e:
            raise ConfigurationError(
                "invalid import configuration",
                context={"errors": "; ".join(err["msg"] for err in e.errors())},
                original_exception=e
            )
