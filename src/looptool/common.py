"""Terminal helpers shared by the CLI and the confirmation prompt."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    YELLOW = "\033[33m"


RESET = "\033[0m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print (``file``, ``end``...)
    """
    print(f"{color.value}{text}{RESET}", *args, **kwargs)
