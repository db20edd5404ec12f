"""
Helpers shared by every arbor layer.

Contents
- Unset: the "argument not given" marker. It is falsy and prints as Unset.
  It differs from None, so None stays usable as a real value.
- coalesce(value, default): swap Unset for a default; keep every other value,
  including None, 0 and "".
- rename(function, name): give a generated function a readable name for
  tracebacks and reprs.
- mirror(name): read-only property over the private "_name" field. Lists
  come out as tuples and dicts as mapping proxies.
- Reflective: metaclass for the value types of the tree, flag and completion
  layers (typename labels, mirrored fields, repr).
- dedent(text): drop the tab indentation of help text written in source.
- tally(*values): how many values are truthy.
- is_stdio(name) / write_file(name, data): "" and "-" name standard output.

    >>> coalesce(Unset, 8080), coalesce(None, 8080)
    (8080, None)
    >>> tally(True, "", "x")
    2
"""
import functools
import re
import sys
from collections.abc import Mapping
from types import MappingProxyType
from typing import final


@final
class UnsetType:
    """
    Type of the Unset marker.

    Constructing it again hands back the one existing instance, and copies
    are the instance itself. It cannot be subclassed. It joins type unions
    (str | Unset) so isinstance checks can accept it next to real types.
    """

    @functools.cache
    def __new__(cls):
        return object.__new__(cls)

    def __init_subclass__(cls, **options):
        raise TypeError("UnsetType cannot be subclassed")

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self


Unset = UnsetType()


def coalesce(value, default=None, /):
    """
    Return value, or default when value is Unset.
    """
    if value is Unset:
        return default
    return value


def rename(function, name, /):
    """
    Set __name__ and __qualname__ of function to name and return it.
    """
    if not callable(function):
        raise TypeError("rename() expects a callable")
    if not isinstance(name, str):
        raise TypeError("rename() name must be a string")
    function.__name__ = function.__qualname__ = name
    return function


def _freeze(value):
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, Mapping) and not isinstance(value, MappingProxyType):
        return MappingProxyType(value)
    return value


def mirror(name, /):
    """
    Build a read-only property returning self._<name>.

    The owner keeps mutating its private list or dict; readers get a tuple or
    a mapping proxy.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() name must be a string")
    field = "_" + name
    return property(rename(lambda self: _freeze(getattr(self, field)), name))


def _typename(name):
    # "CommandNode" -> "command-node"
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


class Reflective(type):
    """
    Metaclass of arbor's value types.

    For a class C it
    - sets C.__typename__, the hyphenated lowercase class name used in error
      messages ("CommandNode" -> "command-node");
    - turns every name in C.__introspectable__ into a mirror() property;
    - adds __rich_repr__ over C.__displayable__ (all introspectable fields when
      not given) and a matching __repr__, unless C defines them itself.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(mcs, name, bases, namespace, **options):
        fields = {field: mirror(field) for field in namespace.get("__introspectable__", ())}
        cls = super().__new__(mcs, name, bases, {**namespace, **fields, "__typename__": _typename(name)}, **options)
        if "__rich_repr__" not in namespace:
            cls.__rich_repr__ = rename(_rich_repr, "__rich_repr__")
        if "__repr__" not in namespace:
            cls.__repr__ = rename(_repr, "__repr__")
        return cls


def _rich_repr(self):
    cls = type(self)
    for field in coalesce(cls.__displayable__, cls.__introspectable__):
        yield field, getattr(self, field)


def _repr(self):
    fields = ", ".join(f"{field}={value!r}" for field, value in self.__rich_repr__())
    return f"{type(self).__typename__}({fields})"


def dedent(text, /):
    """
    Remove leading tab characters from each line of text.

    The first line is skipped; the next line containing something other than
    tabs decides how many tabs are stripped from every following line. Text
    without such a line is returned unchanged.

    Examples
    - dedent("\\n\\tA\\n\\t\\tB") -> "\\nA\\n\\tB"
    - dedent("A\\nB")          -> "A\\nB"
    """
    if not isinstance(text, str):
        raise TypeError("dedent() argument must be a string")
    lines = text.split("\n")
    depth = 0
    for line in lines[1:]:
        if stripped := line.lstrip("\t"):
            depth = len(line) - len(stripped)
            break
    if len(lines) == 1 or depth == 0:
        return text
    for index, line in enumerate(lines[1:], 1):
        prefix = len(line) - len(line.lstrip("\t"))
        lines[index] = line[min(prefix, depth):]
    return "\n".join(lines)


def tally(*values):
    """
    Return the number of truthy values.

    Useful to reject mutually exclusive flags:
        if tally(self.json, self.yaml) > 1: raise error("pick one format")
    """
    return sum(map(bool, values))


def is_stdio(name, /):
    """
    Return True when name refers to standard output ("" or "-").
    """
    return name in ("", "-")


def write_file(name, data, /):
    """
    Write data to the file called name, or to standard output when the name is
    "" or "-". Bytes are written verbatim; strings are encoded as UTF-8.
    """
    if not isinstance(data, str | bytes):
        raise TypeError("write_file() data must be a string or bytes")
    if is_stdio(name):
        if isinstance(data, bytes):
            sys.stdout.buffer.write(data)
        else:
            sys.stdout.write(data)
        sys.stdout.flush()
        return
    mode = "wb" if isinstance(data, bytes) else "w"
    with open(name, mode, **({} if isinstance(data, bytes) else {"encoding": "utf-8"})) as file:
        file.write(data)


__all__ = (
    "UnsetType",
    "Unset",
    "coalesce",
    "rename",
    "mirror",
    "Reflective",
    "dedent",
    "tally",
    "is_stdio",
    "write_file",
)
