"""
looptool entry point.

This file handles startup concerns (arg-parsing, env setup, logging), builds the tool registry and
runs the agent loop once for the given user message.
"""

import argparse
import json
import logging
import sys

from looptool.agent.agent_loop import (
    AgentLoop,
    IterationBudgetExceeded,
)
from looptool.agent.transport import (
    TransportError,
    load_transport,
)
from looptool.common import (
    AnsiColors,
    colored_print,
)
from looptool.config import settings
from looptool.tools import build_registry
from looptool.tools.command import (
    CommandExecutor,
    CommandPolicy,
    ConsoleConfirmer,
)

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "what is the weather in rijeka? what is 2 + 2?"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a tool-calling agent loop against a chat model")
    parser.add_argument("-m", "--message", default=DEFAULT_MESSAGE, help="user message")
    parser.add_argument(
        "--confirm",
        action=argparse.BooleanOptionalAction,
        default=settings.REQUIRE_CONFIRM,
        help="require confirmation before running commands (default: %(default)s)",
    )
    parser.add_argument(
        "--auto-approve-reads",
        action=argparse.BooleanOptionalAction,
        default=settings.AUTO_APPROVE_READS,
        help="auto-approve read-only commands without confirmation (default: %(default)s)",
    )
    parser.add_argument(
        "-T",
        "--timeout",
        type=float,
        default=settings.REQUEST_TIMEOUT,
        help="timeout for chat requests in seconds (default: %(default)s)",
    )
    parser.add_argument("-t", "--dump-tools", action="store_true", help="dump tools and exit")
    parser.add_argument(
        "-d",
        "--debug-render-only",
        action="store_true",
        help="ask the server to render the prompt only and print the raw response",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=settings.MAX_ITERATIONS,
        help="maximum number of tool-calling rounds (default: %(default)s)",
    )
    parser.add_argument("--model", default=settings.OLLAMA_MODEL, help="model identifier")
    parser.add_argument("--host", default=settings.OLLAMA_HOST, help="chat server base URL")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for looptool.

    Returns the process exit status: 0 on a final answer, 1 when the run was aborted by a transport
    error or an exhausted iteration budget.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")

    _init_logging(args.log_level)

    executor = CommandExecutor(
        policy=CommandPolicy(
            require_confirm=args.confirm,
            auto_approve_reads=args.auto_approve_reads,
            default_timeout_seconds=settings.COMMAND_TIMEOUT,
        ),
        confirmer=ConsoleConfirmer(),
    )
    registry = build_registry(executor)

    if args.dump_tools:
        print(json.dumps([tool.model_dump() for tool in registry.schemas()], ensure_ascii=False))
        return 0

    logger.info("using %s from %s", args.model, args.host)
    logger.debug("Settings: %s", settings.model_dump())
    transport = load_transport(base_url=args.host, timeout=args.timeout)
    loop = AgentLoop(
        transport,
        registry,
        model=args.model,
        max_iterations=args.max_iterations,
        system_prompt=settings.SYSTEM_PROMPT,
        debug_render_only=args.debug_render_only,
    )

    logger.info("user: %s", args.message)
    try:
        result = loop.run(args.message)
    except TransportError as exc:
        logger.error("chat error: %s", exc)
        colored_print(f"chat error: {exc}", AnsiColors.RED, file=sys.stderr)
        return 1
    except IterationBudgetExceeded as exc:
        logger.error("%s", exc)
        colored_print(str(exc), AnsiColors.RED, file=sys.stderr)
        return 1
    finally:
        transport.close()

    colored_print(result.answer, AnsiColors.YELLOW)
    return 0


if __name__ == "__main__":
    sys.exit(main())
