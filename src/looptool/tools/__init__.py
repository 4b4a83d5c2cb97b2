"""
Built-in tools for looptool.

Tools are plain functions taking the call's argument mapping and returning text.  They are added to
a :class:`~looptool.agent.tool_executor.ToolRegistry` once at startup; the order below is the
order in which they are advertised to the model.
"""

import logging

from looptool.agent.tool_executor import ToolRegistry
from looptool.tools import (
    command,
    files,
    mock,
)
from looptool.tools.command import CommandExecutor

logger = logging.getLogger(__name__)


def register_builtin_tools(registry: ToolRegistry, command_executor: CommandExecutor) -> ToolRegistry:
    """
    Register the demo, file system and ``run_command`` tools on *registry*.

    Parameters
    ----------
    registry:
        The registry to fill.  It must not already contain tools with the same names.
    command_executor:
        Handler for ``run_command``; carries the confirmation policy and prompt.

    Returns
    -------
    ToolRegistry
        The same registry, for chaining.
    """
    mock.register(registry)
    files.register(registry)
    registry.register(command.TOOL_NAME, command.DESCRIPTION, command.PARAMETERS, command_executor)
    logger.debug("Registered %d built-in tools", len(registry))
    return registry


def build_registry(command_executor: CommandExecutor) -> ToolRegistry:
    """Return a new registry holding every built-in tool."""
    return register_builtin_tools(ToolRegistry(), command_executor)
