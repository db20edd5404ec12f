"""
Host-level configuration.

The host program configures arbor the same way it configures fault rendering:
through dunder attributes on its __main__ module.

- __prog__   program name shown in usage lines and used for the completion
             function (defaults to the basename of sys.argv[0]).
- __styles__ style overrides for colorful fault rendering.
- __codes__  labels replacing numeric fault codes.

Debug mode is usually taken from the environment with debug_from_env().
"""
import os
import sys

_TRUE = frozenset(("1", "t", "T", "true", "TRUE", "True"))
_FALSE = frozenset(("0", "f", "F", "false", "FALSE", "False"))


def program_name(default=None, /):
    """
    Return the program name: __main__.__prog__, then default, then argv[0].
    """
    if prog := getattr(__import__("__main__"), "__prog__", None):
        return str(prog)
    if default:
        return default
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "main"


def parse_bool(text, /):
    """
    Parse a boolean the way command-line flags do ("1", "t", "true", "0", ...).

    Raises ValueError on anything else.
    """
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def debug_from_env(key, /, environ=None):
    """
    Derive the debug switch from an environment variable.

    - unset             -> False
    - set but empty     -> True
    - anything else     -> parsed as a boolean, False when it does not parse
    """
    environ = os.environ if environ is None else environ
    if (value := environ.get(key)) is None:
        return False
    if value == "":
        return True
    try:
        return parse_bool(value)
    except ValueError:
        return False


__all__ = (
    "program_name",
    "parse_bool",
    "debug_from_env",
)
