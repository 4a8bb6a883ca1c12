from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any

import jsonschema

from parley.errors import DuplicateFunction, InnerError, InvalidArguments, InvalidFunction
from parley.functions.base import FunctionDescriptor, Invoker
from parley.functions.validation import ArgumentValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredFunction:
    descriptor: FunctionDescriptor
    invoker: Invoker


class FunctionRegistry:
    """
    Name-keyed table of function descriptors and their invokers.

    Entries are immutable once registered.  Registration order is kept and
    is the order in which descriptors are sent to the service.
    """

    def __init__(self) -> None:
        self._functions: dict[str, RegisteredFunction] = {}

    def register(self, descriptor: FunctionDescriptor, invoker: Invoker) -> None:
        if descriptor.name in self._functions:
            raise DuplicateFunction(descriptor.name)
        if not callable(invoker):
            raise TypeError(f"Invoker for {descriptor.name!r} is not callable")
        try:
            jsonschema.validators.validator_for(descriptor.parameters).check_schema(
                descriptor.parameters
            )
        except jsonschema.SchemaError as e:
            raise ValueError(
                f"Invalid parameter schema for {descriptor.name!r}: {e.message}"
            ) from e
        self._functions[descriptor.name] = RegisteredFunction(descriptor, invoker)

    def get(self, name: str) -> RegisteredFunction | None:
        return self._functions.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def describe_all(self) -> list[dict]:
        return [f.descriptor.to_dict() for f in self._functions.values()]

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, name: str, arguments_json: str) -> Any:
        """
        Deserialize *arguments_json*, validate it against the registered
        schema and call the invoker.

        Raises ``InvalidFunction`` for unknown names, ``InvalidArguments``
        when the payload is not a JSON object matching the schema, and
        ``InnerError`` when the invoker itself fails.
        """
        entry = self._functions.get(name)
        if entry is None:
            raise InvalidFunction(name)

        try:
            arguments = json.loads(arguments_json or "{}")
        except (json.JSONDecodeError, TypeError) as e:
            raise InvalidArguments(name, f"Arguments are not valid JSON: {e}") from e
        if not isinstance(arguments, dict):
            raise InvalidArguments(name, "Arguments must be a JSON object")

        valid, error_msg = ArgumentValidator.validate(entry.descriptor, arguments)
        if not valid:
            raise InvalidArguments(name, f"Arguments do not match schema: {error_msg}")

        # Catch signature mismatches the schema let through.
        try:
            inspect.signature(entry.invoker).bind(**arguments)
        except TypeError as e:
            raise InvalidArguments(name, str(e)) from e
        except ValueError:
            pass  # no introspectable signature

        logger.info("Calling %s with %s", name, arguments)
        try:
            result = entry.invoker(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("Function %s raised: %s", name, e)
            raise InnerError(name, str(e)) from e
        return result

    async def invoke_to_content(self, name: str, arguments_json: str) -> str:
        """Invoke and serialize the result as Function-message content."""
        result = await self.invoke(name, arguments_json)
        try:
            return json.dumps(result)
        except (TypeError, ValueError) as e:
            raise InnerError(name, f"Result is not JSON serializable: {e}") from e
