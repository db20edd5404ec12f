"""
Arbor faults (configuration errors, usage errors and control signals).

Scope
- FaultCode: canonical, stable numeric identifiers for every fault the toolkit
  can raise. Codes are grouped by domain to keep logs and searches predictable.
- ConfigurationError / UnsupportedFlagError: programming mistakes detected while
  the command tree or a flag schema is being built. They are never recovered by
  the dispatcher; the program aborts at startup.
- CommandException: base type of runtime faults. Carries a message, a fault code
  and read-only options, and knows how to render itself through rich.
- UsageError / FlagError: problems with the command line itself (unknown command,
  malformed flag, wrong positional count). Rendered with usage text, exit 2.
- HelpRequested: help was asked for. Not an error; exit 0.
- ExitCode: sentinel that sets the process exit status without printing anything.
- error() / errorf(): helpers for command code to raise usage errors.

Integration
- Commands raise these from main(); the dispatcher maps each one to an exit
  status (CommandException.status) and renders it on stderr.
- Styles can be overridden by the host through a __styles__ mapping in __main__,
  and code labels through __codes__.
"""
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)

STYLES = {
    "error-label": "bold #FF4DA6",
    "error-message": "#C8C8D0",
}


class FaultCode(IntEnum):
    """
    Stable numeric identifiers of every arbor fault.

    Ranges
    - signals (100xx)
      • HELP_REQUESTED, EXIT_CODE
    - usage (111xx)
      • UNKNOWN_COMMAND, MALFORMED_FLAG, UNKNOWN_FLAG, MISSING_FLAG_VALUE,
        INVALID_FLAG_VALUE, ARGUMENT_COUNT, USAGE
    - runtime (112xx)
      • COMMAND_FAILED, RENDER_FAILED
    - configuration (211xx)
      • INVALID_NAME, DUPLICATE_NAME, REPARENTED_COMMAND, FROZEN_TREE,
        DUPLICATE_FLAG, UNSUPPORTED_FLAG, COMPLETION_COLLISION
    """
    # --- signals (100xx) ---
    HELP_REQUESTED        = 10001
    EXIT_CODE             = 10002

    # --- usage errors (111xx) ---
    UNKNOWN_COMMAND       = 11101
    MALFORMED_FLAG        = 11111
    UNKNOWN_FLAG          = 11112
    MISSING_FLAG_VALUE    = 11113
    INVALID_FLAG_VALUE    = 11114
    ARGUMENT_COUNT        = 11121
    USAGE                 = 11131

    # --- runtime errors (112xx) ---
    COMMAND_FAILED        = 11201
    RENDER_FAILED         = 11202

    # --- configuration errors (211xx) ---
    INVALID_NAME          = 21101
    DUPLICATE_NAME        = 21102
    REPARENTED_COMMAND    = 21103
    FROZEN_TREE           = 21104
    DUPLICATE_FLAG        = 21111
    UNSUPPORTED_FLAG      = 21112
    COMPLETION_COLLISION  = 21121

    def normalize(self):
        """
        Label of this code for display: the host's __main__.__codes__ entry
        when there is one, else the number as a string.
        """
        labels = getattr(__import__("__main__"), "__codes__", None) or {}
        return str(labels.get(self, self.value))


class ConfigurationError(ValueError):
    """
    A command tree or flag schema was declared incorrectly.

    Raised while registering nodes or building a flag schema; never a
    user-facing condition.
    """

    def __init__(self, message, /, code=FaultCode.INVALID_NAME):
        super().__init__(message)
        self.message = message
        self.code = FaultCode(code)


class UnsupportedFlagError(ConfigurationError, TypeError):
    """
    A flag was declared with a value kind the schema compiler cannot bind.
    """

    def __init__(self, message, /, code=FaultCode.UNSUPPORTED_FLAG):
        super().__init__(message, code)


class CommandException(Exception):
    """
    Base of runtime faults surfaced by the dispatcher.

    Options
    - code: FaultCode (defaults to the class' __code__).
    - colorful: render with styles (default False, output stays byte-exact).
    - any other context a renderer may want (node, flag, token...).
    """
    __code__ = FaultCode.COMMAND_FAILED
    __status__ = 1

    def __init__(self, message=Unset, /, **options):
        if not isinstance(message, str | Unset):
            raise TypeError(f"{type(self).__name__} message must be a string")
        super().__init__(*([] if message is Unset else [message]))
        self.message = message
        self.options = MappingProxyType({"code": type(self).__code__, **options})

    @property
    def code(self):
        return self.options["code"]

    @property
    def status(self):
        """
        Process exit status for this fault.
        """
        return type(self).__status__

    def __str__(self):
        return "" if self.message is Unset else self.message

    def __rich__(self):
        if self.options.get("colorful", False):
            styles = STYLES | getattr(__import__("__main__"), "__styles__", {})
            label, message = styles.get("error-label", ""), styles.get("error-message", "")
        else:
            label = message = ""
        return Text.assemble(("Error: ", label), (str(self).strip(), message))


class UsageError(CommandException):
    """
    The command line was not acceptable: rendered as "Error: ..." plus usage.
    """
    __code__ = FaultCode.USAGE
    __status__ = 2


class FlagError(UsageError):
    """
    A flag token could not be parsed or its value was rejected.
    """
    __code__ = FaultCode.MALFORMED_FLAG


class HelpRequested(CommandException):
    """
    Help was requested, either by a help token or by a command.
    """
    __code__ = FaultCode.HELP_REQUESTED
    __status__ = 0

    def __init__(self, message="help requested", /, **options):
        super().__init__(message, **options)


class ExitCode(CommandException):
    """
    Exit with the given status without printing any message.
    """
    __code__ = FaultCode.EXIT_CODE

    def __init__(self, status, /, **options):
        if not isinstance(status, int) or isinstance(status, bool):
            raise TypeError("exit-code 'status' must be an integer")
        super().__init__(f"exit code {status}", **options)
        self._status = status

    @property
    def status(self):
        return self._status


def error(*values):
    """
    Build a UsageError from values (joined with spaces, like print()).
    """
    if len(values) == 1 and isinstance(values[0], str):
        return UsageError(values[0])
    return UsageError(" ".join(map(str, values)))


def errorf(format, /, *values):
    """
    Build a UsageError from a %-style format string.
    """
    return UsageError(format % values if values else format)


__all__ = (
    "FaultCode",
    "ConfigurationError",
    "UnsupportedFlagError",
    "CommandException",
    "UsageError",
    "FlagError",
    "HelpRequested",
    "ExitCode",
    "error",
    "errorf",
)
