"""
Tool registry for looptool.

Holds the tool definitions advertised to the model and dispatches tool calls to their handlers by
name.  A handler receives the call's argument mapping and returns the text that is fed back to the
model; it reports failure by raising :class:`ToolExecutionError`.
"""

import copy
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Tuple,
    Type,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from looptool.core.schema import (
    ToolDefinition,
    ToolFunction,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Mapping[str, Any]], str]
ArgsModel = TypeVar("ArgsModel", bound=BaseModel)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""

    kind = "tool_error"


class UnknownToolError(ToolExecutionError):
    """Raised when the model asks for a tool that is not registered."""

    kind = "unknown_tool"


class PermissionDeniedError(ToolExecutionError):
    """Raised when the operator refuses to let a tool run."""

    kind = "permission_denied"


def parse_arguments(
    model: Type[ArgsModel], arguments: Mapping[str, Any] | None, tool_name: str
) -> ArgsModel:
    """
    Validate tool *arguments* against a pydantic *model*.

    Raises
    ------
    ToolExecutionError
        If the arguments do not fit the model.
    """
    try:
        return model.model_validate(dict(arguments or {}))
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'arguments'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ToolExecutionError(f"Invalid arguments for tool '{tool_name}': {errors}") from exc


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class ToolRegistry:
    """
    Ordered mapping of tool name to definition and handler.

    The registry is filled once at startup and only read afterwards, so several agent loops may
    dispatch through the same instance.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tuple[ToolDefinition, ToolHandler]] = {}

    def register(
        self,
        name: str,
        description: str,
        parameters: Mapping[str, Any],
        handler: ToolHandler,
    ) -> ToolDefinition:
        """
        Add a tool and bind its handler.

        Parameters
        ----------
        name:
            Unique tool name the model uses to call it.
        description:
            Human readable description sent to the model.
        parameters:
            JSON-schema object describing the tool arguments.
        handler:
            Callable taking the argument mapping and returning the result text.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if not name:
            raise ValueError("Tool name must be a non-empty string.")
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")

        definition = ToolDefinition(
            function=ToolFunction(
                name=name, description=description, parameters=copy.deepcopy(dict(parameters))
            )
        )
        self._tools[name] = (definition, handler)
        logger.debug("Registering tool '%s'", name)
        return definition

    def tool(
        self, name: str, description: str, parameters: Mapping[str, Any]
    ) -> Callable[[ToolHandler], ToolHandler]:
        """
        Decorator form of :meth:`register`::

            @registry.tool("echo", "Echo the text back", {...})
            def echo(args):
                return args["text"]
        """

        def wrapper(fn: ToolHandler) -> ToolHandler:
            self.register(name, description, parameters, fn)
            return fn

        return wrapper

    def schemas(self) -> List[ToolDefinition]:
        """Tool definitions in registration order."""
        return [definition for definition, _ in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def execute(self, name: str, arguments: Mapping[str, Any] | None = None) -> str:
        """
        Look up *name* and invoke its handler with *arguments*.

        Returns
        -------
        str
            Whatever text the handler returned.

        Raises
        ------
        UnknownToolError
            If no tool with that name is registered.
        ToolExecutionError
            If the handler fails.  Errors raised by the handler itself pass through unchanged,
            anything else is re-raised as a ``ToolExecutionError`` with the same message.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise UnknownToolError(f"unknown tool: {name}")
        _, handler = entry

        if arguments is None:
            arguments = {}

        logger.debug("Executing tool '%s' with args=%s", name, arguments)
        try:
            return handler(arguments)
        except ToolExecutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(str(exc) or type(exc).__name__) from exc
