"""
Named hooks invoked by the import engine, bound to a user context object.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.exceptions import UnknownCallbackError

# Pipeline extension points, in the order the engine reaches them
CALLBACKS = (
    # once, before the first batch is scheduled
    "before_run",
    # at the start of every batch job
    "before_each_batch",
    # with each source record, before the transform; truthy => skip the record
    "reject",
    # with each source record, before the transform
    "before_each",
    # with (attrs, record) after the transform, before the save
    "each_before_save",
    # with attrs after the transform; truthy => skip the record
    "reject_after_transform",
    # with (record, attrs) after the transform
    "after_each",
)


class _Skip:
    """Hook result: drop the current record and carry on"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SKIP"


SKIP = _Skip()


@dataclass(frozen=True)
class Abort:
    """Hook result: stop the whole run"""
    reason: str = "aborted by callback"


class CallbackDispatcher:
    """
    Stores hooks by name and invokes them against a single context object.

    A hook is called as ``hook(context, *args)``, i.e. like a method of the
    context. Hooks may be plain functions or coroutine functions.
    """

    def __init__(self, context: Any = None, callbacks: Optional[Dict[str, Callable]] = None):
        self.context = context
        self.callbacks: Dict[str, Callable] = {}
        for name, body in (callbacks or {}).items():
            self.register(name, body)

    def register(self, name: str, body: Callable) -> None:
        if name not in CALLBACKS:
            raise UnknownCallbackError(
                f"unknown callback name: {name}",
                context={"callback": name, "known_callbacks": ", ".join(CALLBACKS)}
            )
        self.callbacks[name] = body

    async def invoke(self, name: str, *args: Any) -> Any:
        """Run the hook registered under ``name``; None if there is none"""
        body = self.callbacks.get(name)
        if body is None:
            return None

        result = body(self.context, *args)
        if inspect.isawaitable(result):
            result = await result
        return result
