"""
``run_command`` tool: run a shell command under a timeout, optionally gated by an operator.

The executor takes an explicit :class:`CommandPolicy` and a :class:`Confirmer`, so several
executors with different policies can live side by side and tests can answer the confirmation
prompt without a terminal.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Mapping,
    Optional,
    TextIO,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from looptool.agent.tool_executor import (
    PermissionDeniedError,
    ToolExecutionError,
    parse_arguments,
)
from looptool.common import (
    AnsiColors,
    colored_print,
)
from looptool.core.schema import CommandExecutionResult

logger = logging.getLogger(__name__)

TOOL_NAME = "run_command"
TIMEOUT_EXIT_CODE = -1
TIMEOUT_ERROR = "command timed out"
DRAIN_GRACE_SECONDS = 0.5

_READ_ONLY_PREFIXES = (
    "ls", "cat", "head", "tail", "grep", "find", "pwd",
    "echo", "printf", "wc", "sort", "uniq", "diff",
    "which", "whereis", "type", "file", "stat",
    "ps", "top", "df", "du", "free", "uname",
    "date", "cal", "env", "printenv",
    "git log", "git status", "git diff", "git show",
    "docker ps", "docker images", "docker inspect",
    "kubectl get", "kubectl describe",
)  # fmt: skip
_READ_ONLY_FLAGS = ("--help", "--version", "-h", "-v")

PARAMETERS = {
    "type": "object",
    "required": ["command"],
    "properties": {
        "command": {
            "type": "string",
            "description": "The shell command to execute",
        },
        "working_dir": {
            "type": "string",
            "description": "The working directory to run the command in (default: current directory)",
        },
        "timeout_seconds": {
            "type": "number",
            "description": "Timeout in seconds (default: 30)",
        },
    },
}
DESCRIPTION = (
    "Execute a shell command and return its output. Use this for running scripts, building "
    "projects, testing code, etc."
)


def is_read_only_command(command: str) -> bool:
    """
    Guess whether *command* only reads state.

    This is a prefix/substring heuristic used to skip the confirmation prompt, not a sandbox:
    ``ls; rm -rf x`` is classified read-only.
    """
    command = command.strip().lower()
    for prefix in _READ_ONLY_PREFIXES:
        if command == prefix or command.startswith(prefix + " "):
            return True
    return any(flag in command for flag in _READ_ONLY_FLAGS)


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------
class Confirmer(ABC):
    """Asks an operator whether a command may run."""

    @abstractmethod
    def confirm(self, prompt: str) -> bool:
        """Block until the operator answers; return True only for an explicit yes."""


class ConsoleConfirmer(Confirmer):
    """Reads a y/N answer from a blocking text stream (stdin by default)."""

    AFFIRMATIVE = frozenset({"y", "yes"})

    def __init__(self, input_stream: TextIO | None = None, output_stream: TextIO | None = None):
        self._input = input_stream or sys.stdin
        self._output = output_stream or sys.stdout

    def confirm(self, prompt: str) -> bool:
        colored_print(prompt, AnsiColors.YELLOW, file=self._output)
        print("Allow this command? [y/N]: ", end="", file=self._output, flush=True)
        answer = self._input.readline()  # "" on EOF, which counts as a refusal
        print(file=self._output)
        return answer.strip().lower() in self.AFFIRMATIVE


class StaticConfirmer(Confirmer):
    """Gives the same answer every time; records the prompts it was shown."""

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------
class CommandPolicy(BaseModel):
    """When to ask before running a command, and the default deadline."""

    model_config = ConfigDict(frozen=True)

    require_confirm: bool = True
    auto_approve_reads: bool = True
    default_timeout_seconds: float = Field(30.0, gt=0)


class CommandArguments(BaseModel):
    """Arguments accepted by ``run_command``."""

    command: str = Field(..., min_length=1)
    working_dir: str = "."
    timeout_seconds: Optional[float] = Field(None, gt=0)

    @field_validator("working_dir", mode="before")
    @classmethod
    def _default_working_dir(cls, value: Any) -> Any:
        return "." if value is None or value == "" else value


class CommandExecutor:
    """
    Tool handler for ``run_command``.

    Calling the instance with an argument mapping validates it, asks for confirmation when the
    policy requires it, runs the command through ``sh -c`` and returns the JSON-encoded
    :class:`CommandExecutionResult`.
    """

    def __init__(
        self,
        policy: CommandPolicy | None = None,
        confirmer: Confirmer | None = None,
        shell: str = "sh",
    ) -> None:
        self.policy = policy or CommandPolicy()
        self.confirmer = confirmer or ConsoleConfirmer()
        self.shell = shell

    def __call__(self, arguments: Mapping[str, Any]) -> str:
        args = parse_arguments(CommandArguments, arguments, TOOL_NAME)
        result = self.run(args.command, args.working_dir, args.timeout_seconds)
        return result.to_json()

    def needs_confirmation(self, command: str) -> bool:
        if not self.policy.require_confirm:
            return False
        return not (self.policy.auto_approve_reads and is_read_only_command(command))

    def run(
        self, command: str, working_dir: str = ".", timeout_seconds: float | None = None
    ) -> CommandExecutionResult:
        """
        Run *command* in *working_dir* and wait at most *timeout_seconds*.

        A timeout is reported in the result (``exit_code == -1``), not raised.

        Raises
        ------
        PermissionDeniedError
            If confirmation was required and refused.  Nothing is spawned in that case.
        ToolExecutionError
            If the shell could not be started.
        """
        if not command:
            raise ToolExecutionError("command must be a non-empty string")
        timeout = timeout_seconds or self.policy.default_timeout_seconds

        if self.needs_confirmation(command):
            prompt = (
                "\n⚠️  The agent wants to run a command:\n"
                f"   Command: {command}\n"
                f"   Working Dir: {working_dir}\n"
            )
            if not self.confirmer.confirm(prompt):
                logger.info("Command denied by operator: %s", command)
                raise PermissionDeniedError("command execution denied by user")

        logger.info("Running command %r in %s (timeout %ss)", command, working_dir, timeout)
        start = time.monotonic()
        try:
            # own session, so a timeout can kill the shell together with its children
            proc = subprocess.Popen(
                [self.shell, "-c", command],
                cwd=working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as exc:
            raise ToolExecutionError(f"failed to execute command: {exc}") from exc

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(proc)
            stdout, stderr = _drain_after_kill(proc)
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Command timed out after %sms: %s", duration_ms, command)
            return CommandExecutionResult(
                command=command,
                working_dir=working_dir,
                stdout=stdout or "",
                stderr=stderr or "",
                exit_code=TIMEOUT_EXIT_CODE,
                duration_ms=duration_ms,
                success=False,
                error=TIMEOUT_ERROR,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Command exited with %d after %sms", proc.returncode, duration_ms)
        return CommandExecutionResult(
            command=command,
            working_dir=working_dir,
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            duration_ms=duration_ms,
            success=proc.returncode == 0,
        )


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # already gone
    except OSError:
        proc.kill()


def _drain_after_kill(proc: subprocess.Popen) -> Tuple[str, str]:
    """
    Collect what the killed command wrote, waiting at most ``DRAIN_GRACE_SECONDS``.

    A descendant that left the process group (``setsid``, daemons) survives the kill and may keep
    the pipes open; in that case the output read so far is returned and the pipes are closed.
    """
    try:
        return proc.communicate(timeout=DRAIN_GRACE_SECONDS)
    except subprocess.TimeoutExpired as exc:
        stdout, stderr = _decode(exc.stdout), _decode(exc.stderr)
    for pipe in (proc.stdout, proc.stderr):
        if pipe is not None:
            pipe.close()
    proc.wait()
    logger.warning("Command left processes holding its output open: %s", proc.args)
    return stdout, stderr


def _decode(data: bytes | str | None) -> str:
    # TimeoutExpired carries raw bytes even for text-mode pipes
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
