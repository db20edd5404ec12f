"""
Arbor dispatcher.

Scope
- parse(): resolve a token sequence against a command tree into a ParseResult
  (node, command, args, outcome, error). Pure: prints nothing, exits nothing.
- Dispatcher: parse, run the command, render the outcome and terminate through
  an injectable exit callable.

Parsing (one pass, in order)
1. Walk: descend through child aliases while the node has children (see
   tree.walk). Help tokens are recorded; an unknown token is a usage error.
2. A help token right after the walk also requests help.
3. Instantiate the node's command (a Placeholder when it has no factory).
4. Without error or help and with tokens left, bind flags (flags.compile_flags)
   and parse them; the rest are positional arguments.
5. Check the positional count against min_args/max_args.

Outcomes and exit status
- OK              main(args) ran; 0.
- HELP_REQUESTED  usage and help on stderr; 0.
- USAGE_ERROR     "Error: ..." and usage on stderr; 2.
- EXIT_CODE       ExitCode(n) raised by main; nothing printed; n.
- any other error "Error: ..." on stderr (a traceback in verbose mode); 1.

A failure while rendering is reported as "panic: ..." plus a traceback; 2.
"""
import enum
import sys
import traceback
from collections import namedtuple

from rich.traceback import Traceback

from . import faults
from .config import program_name
from .faults import *
from .flags import compile_flags
from .help import Writer
from .kinds import quote
from .logs import get_logger
from .tree import *
from .utils import *

logger = get_logger("dispatch")


class Outcome(enum.Enum):
    OK = "ok"
    USAGE_ERROR = "usage-error"
    HELP_REQUESTED = "help-requested"
    EXIT_CODE = "exit-code"


ParseResult = namedtuple("ParseResult", ("node", "command", "args", "outcome", "error"))


def outcome_of(error, /):
    """
    Classify an error (or None) into an Outcome.
    """
    match error:
        case None:
            return Outcome.OK
        case HelpRequested():
            return Outcome.HELP_REQUESTED
        case ExitCode():
            return Outcome.EXIT_CODE
        case _:
            return Outcome.USAGE_ERROR


def _check_count(node, count):
    """
    Return a UsageError when count positionals are not acceptable for node.
    """
    low, high = node.min_args, node.max_args
    if low == high and count != low:
        if low <= 0:
            return UsageError("command does not accept any arguments", code=FaultCode.ARGUMENT_COUNT)
        return UsageError(f"command requires {low} argument(s)", code=FaultCode.ARGUMENT_COUNT)
    if count < low:
        return UsageError(f"command requires at least {low} argument(s)", code=FaultCode.ARGUMENT_COUNT)
    if low < high < count:
        return UsageError(f"command accepts at most {high} argument(s)", code=FaultCode.ARGUMENT_COUNT)
    return None


def parse(root, tokens, /):
    """
    Resolve tokens against the tree rooted at root.

    Configuration errors raised by factories or flag declarations propagate;
    every user-facing problem ends up in the result's error.
    """
    node, rest, help, unknown = walk(root, tokens)
    error = None
    if unknown is not None:
        error = UsageError(f"unknown command {quote(unknown)}", code=FaultCode.UNKNOWN_COMMAND)
    elif help or (rest and is_help(rest[0])):
        error = HelpRequested()

    command = node.new()
    if error is None and rest:
        try:
            rest = compile_flags(command).parse(rest)
        except (UsageError, HelpRequested) as exception:
            error = exception

    if error is not None:
        args = []
    else:
        args = rest
        error = _check_count(node, len(args))

    outcome = outcome_of(error)
    logger.debug("parsed %r as %s at %r", list(tokens), outcome.value, node.full_name())
    return ParseResult(node, command, args, outcome, error)


class Dispatcher:
    """
    Run commands of a tree from argv-style tokens.

    Parameters
    - root: root CommandNode of the tree.
    - prog: program name for usage lines (defaults to config.program_name()).
    - exit: termination callable receiving the exit status (sys.exit).
    - console: rich Console receiving all output (stderr by default).
    - verbose: render command failures with a full traceback.
    """

    def __init__(self, root, /, prog=Unset, exit=sys.exit, console=Unset, verbose=False):
        if not isinstance(root, CommandNode):
            raise TypeError("dispatcher 'root' must be a command node")
        if not callable(exit):
            raise TypeError("dispatcher 'exit' must be callable")
        self._root = root
        self._prog = prog
        self._exit = exit
        self._console = coalesce(console, faults.console)
        self._verbose = bool(verbose)

    root = mirror("root")
    verbose = mirror("verbose")

    @property
    def prog(self):
        return coalesce(self._prog) or program_name()

    def parse(self, tokens, /):
        return parse(self._root, tokens)

    def execute(self, result, /):
        """
        Run the parsed command (when parsing succeeded), render the outcome
        and return the exit status.
        """
        error = result.error
        if result.outcome is Outcome.OK:
            try:
                result.command.main(list(result.args))
            except (UsageError, HelpRequested, ExitCode) as exception:
                error = exception
            except Exception as exception:
                return self._fail(exception)
            else:
                return 0

        writer = Writer(result.node, self.prog)
        match error:
            case ExitCode():
                logger.debug("%s finished with %s", result.node.full_name(self.prog), outcome_of(error).value)
                return error.status
            case HelpRequested():
                writer.help()
            case _:
                writer.error(str(error))
        self._write(writer.getvalue())
        logger.debug("%s finished with %s", result.node.full_name(self.prog), outcome_of(error).value)
        return error.status

    def run(self, tokens=Unset, /):
        """
        Parse tokens (sys.argv[1:] by default), execute and terminate.
        """
        tokens = sys.argv[1:] if tokens is Unset else list(tokens)
        result = self.parse(tokens)
        try:
            status = self.execute(result)
        except Exception as exception:
            logger.debug("render failed [%s]: %s", FaultCode.RENDER_FAILED.normalize(), exception)
            self._write(f"panic: {exception}\n\n{traceback.format_exc()}")
            status = 2
        self._exit(status)
        return status

    def _fail(self, exception):
        if self._verbose:
            self._console.print(Traceback.from_exception(type(exception), exception, exception.__traceback__))
        elif isinstance(exception, CommandException):
            self._console.print(exception, soft_wrap=True)
        else:
            self._write(f"Error: {exception}\n")
        return exception.status if isinstance(exception, CommandException) else 1

    def _write(self, text):
        # Byte-exact: bypasses rich rendering (tabs stay tabs).
        file = self._console.file
        file.write(text)
        file.flush()


def run(tree, tokens=Unset, /, **options):
    """
    Dispatch tokens with a Dispatcher over tree (a CommandTree or a root node).
    """
    if isinstance(tree, CommandTree):
        return tree.run(tokens, **options)
    return Dispatcher(tree, **options).run(tokens)


__all__ = (
    "Outcome",
    "ParseResult",
    "outcome_of",
    "parse",
    "Dispatcher",
    "run",
)
