"""
Flag schema compiler.

Scope
- flag(): declare a typed flag as a class attribute of a command (or of any
  FlagGroup). Declarations are collected once per class, walking the MRO
  bases-first, so inheriting from a FlagGroup composes its flags into the
  subclass.
- FlagGroup: base for reusable groups of flags. A group instance stored in a
  public attribute of a command flattens into the command's flag namespace.
- compile_flags(): bind the declarations of a live command instance into a
  FlagSet of FlagSpec objects (one per flag, built fresh for every parse).
- FlagSet.parse(): consume "-name", "-name=value" and "-name value" tokens up
  to the first positional argument or a "--" terminator.

Tags
- A tag is "name,usage". The first comma splits the name from the usage text,
  unless a space or a "<" comes before it, in which case the whole tag is usage.
- Without an explicit name the flag is named after the attribute: words are
  split at case and digit boundaries, joined with "-" and lowercased
  ("dryRun" -> "dry-run", "ABcd" -> "a-bcd", "XY" -> "xy", "1A" -> "1-a").
- A "<word>" in the usage is the value placeholder shown in help output;
  "<file>" and "<dir>" also select path completion.

Binding rules
- Scalar kinds bind in place; the default is the attribute's current value.
- Maybe[kind] starts absent; setting the flag stores a present Maybe.
- list[str] appends one element per occurrence.
- dict[str, str] requires "key=value" per occurrence.
- Value subclasses parse themselves.
- Anything else raises UnsupportedFlagError when the schema is built.

Example
    class Serve(Command):
        port = flag(int, "Listen on <port>", default=8080)
        tls = flag(Maybe[bool], "Force TLS on or off")
        header = flag(dict[str, str], "Extra response header <name=value>")
"""
import copy
import functools
import re
import typing
from collections import namedtuple

from .faults import *
from .kinds import *
from .logs import get_logger
from .utils import *

logger = get_logger("flags")

_WORDS = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")

Shape = namedtuple("Shape", ("multiplicity", "optional", "kind", "custom"))


def derive_name(identifier, /):
    """
    Derive a flag name from an attribute identifier.

    Words are split at lower-to-upper transitions, before the last capital of
    an upper-case run followed by lowercase letters, and at digit boundaries.
    Underscores and dashes separate words too.
    """
    if not isinstance(identifier, str):
        raise TypeError("derive_name() argument must be a string")
    return "-".join(_WORDS.findall(identifier)).lower()


def split_tag(tag, /):
    """
    Split a "name,usage" tag into (name, usage).

    The name is empty when there is no comma, or when a space or a "<" opens
    before the first comma (the comma then belongs to the usage text).
    """
    if (comma := tag.find(",")) == -1:
        return "", tag
    for stop in (" ", "\t", "<"):
        if 0 <= tag.find(stop) < comma:
            return "", tag
    return tag[:comma], tag[comma + 1:]


def unquote(usage, /):
    """
    Extract the "<placeholder>" from usage text.

    Returns (placeholder, usage) where the usage has the angle brackets removed.
    Only the first placeholder without whitespace inside counts.
    """
    start = -1
    for index, char in enumerate(usage):
        match char:
            case "<":
                if start == -1:
                    start = index
            case ">":
                if start != -1:
                    return usage[start + 1:index], usage[:start] + usage[start + 1:index] + usage[index + 1:]
            case " " | "\t":
                start = -1
    return "", usage


def _shape(kind):
    """
    Classify a declared kind into its Shape, or raise UnsupportedFlagError.
    """
    origin, arguments = typing.get_origin(kind), typing.get_args(kind)
    if origin is Maybe:
        if len(arguments) != 1:
            raise UnsupportedFlagError(f"unsupported flag type: {kind!r}")
        return Shape("single", True, lookup(arguments[0]), False)
    if origin is list:
        if arguments != (str,):
            raise UnsupportedFlagError(f"unsupported flag type: {kind!r}")
        return Shape("list", False, STRING, False)
    if origin is dict:
        if arguments != (str, str):
            raise UnsupportedFlagError(f"unsupported flag type: {kind!r}")
        return Shape("map", False, STRING, False)
    if isinstance(kind, type) and issubclass(kind, Value):
        return Shape("single", False, kind, True)
    return Shape("single", False, lookup(kind), False)


class Field(metaclass=Reflective):
    """
    A declared flag: class attribute created by flag().

    Reading the attribute on an instance materializes a fresh default in the
    instance dictionary; from then on the instance owns the value and the
    flag binder writes to it.
    """
    __introspectable__ = ("name", "usage", "kind", "attr", "default")

    def __init__(self, kind, tag="", /, default=Unset):
        if not isinstance(tag, str):
            raise TypeError(f"{type(self).__typename__} 'tag' must be a string")
        self._kind = kind
        self._name, self._usage = split_tag(tag)
        self._default = default
        self._attr = Unset
        self._shape = Unset
        if self._name and (self._name.startswith("-") or "=" in self._name):
            raise ConfigurationError(f"invalid flag name: {self._name!r}", FaultCode.INVALID_NAME)

    def __set_name__(self, owner, attr):
        self._attr = attr
        if not self._name:
            if not (name := derive_name(attr)):
                raise ConfigurationError(f"cannot derive a flag name from {attr!r}", FaultCode.INVALID_NAME)
            self._name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        value = instance.__dict__[self._attr] = self.initial()
        return value

    @property
    def shape(self):
        """
        Resolved Shape of the declared kind (computed once).
        """
        if self._shape is Unset:
            shape = _shape(self._kind)
            if self._default is not Unset:
                _check_default(self, shape, self._default)
            self._shape = shape
        return self._shape

    def initial(self):
        """
        Return a fresh initial value (the declared default, or the zero value).
        """
        shape = self.shape
        if self._default is not Unset:
            return copy.deepcopy(self._default)
        if shape.custom:
            return shape.kind()
        match shape:
            case Shape(multiplicity="list"):
                return []
            case Shape(multiplicity="map"):
                return {}
            case Shape(optional=True):
                return Maybe()
            case _:
                return shape.kind.zero


def _check_default(field, shape, default):
    match shape:
        case Shape(custom=True):
            valid = isinstance(default, shape.kind)
        case Shape(multiplicity="list"):
            valid = isinstance(default, list) and all(isinstance(item, str) for item in default)
        case Shape(multiplicity="map"):
            valid = isinstance(default, dict) and all(
                isinstance(key, str) and isinstance(item, str) for key, item in default.items()
            )
        case Shape(optional=True):
            valid = isinstance(default, Maybe) and (not default.present or accepts(shape.kind, default.value))
        case _:
            valid = accepts(shape.kind, default)
    if not valid:
        raise ConfigurationError(
            f"flag {field.name!r} default {default!r} does not match its type", FaultCode.UNSUPPORTED_FLAG
        )


def flag(kind, tag="", /, default=Unset):
    """
    Declare a flag of the given kind.

    Parameters
    - kind: bool, int, float, str, datetime.timedelta, Int64, Uint, Uint64,
      Maybe[scalar], list[str], dict[str, str] or a Value subclass.
    - tag: "name,usage" (name optional, see split_tag()).
    - default: initial value; the kind's zero value when omitted.
    """
    return Field(kind, tag, default)


class FlagGroup:
    """
    Base for classes that declare flags.

    Commands are flag groups; so are reusable option bundles. A bundle either
    becomes a base class of the command, or an instance of it is stored in a
    public attribute of the command; both flatten into one flag namespace.
    """

    def __rich_repr__(self):
        for attr, field in declarations(type(self)):
            yield attr, getattr(self, attr)


@functools.cache
def declarations(cls, /):
    """
    Return the (attr, Field) pairs declared by cls and its bases, bases first.
    """
    fields = {}
    for base in reversed(cls.__mro__):
        for attr, value in vars(base).items():
            if isinstance(value, Field):
                fields[attr] = value
    return tuple(fields.items())


class FlagSpec(metaclass=Reflective):
    """
    One flag bound to the object that owns its value.

    Attributes
    - name: flag name without the leading dash.
    - usage: usage text with placeholder brackets removed.
    - placeholder: value name shown in help ("" for boolean flags).
    - kind: kind name (bool, duration, float, int, int64, string, uint, uint64, value).
    - optional: True for Maybe[...] flags.
    - multiplicity: "single", "list" or "map".
    - default: display string of the value at bind time.
    - completion: "file", "dir" or "word" for flags taking a value, None otherwise.
    """
    __introspectable__ = (
        "name",
        "usage",
        "placeholder",
        "kind",
        "optional",
        "multiplicity",
        "default",
        "completion",
    )
    __displayable__ = ("name", "kind", "optional", "multiplicity", "default")

    def __init__(self, field, owner, /):
        self._field = field
        self._owner = owner
        shape = field.shape
        placeholder, self._usage = unquote(field.usage)
        self._name = field.name
        self._kind = "value" if shape.custom else shape.kind.name
        self._optional = shape.optional
        self._multiplicity = shape.multiplicity
        self._default = str(self)
        if self.boolean:
            self._placeholder = ""
            self._completion = None
        else:
            if placeholder:
                self._placeholder = placeholder
            elif shape.custom or shape.multiplicity != "single":
                self._placeholder = "value"
            else:
                self._placeholder = shape.kind.placeholder
            self._completion = placeholder if placeholder in ("file", "dir") else "word"

    @property
    def value(self):
        """
        Current value held by the owner.
        """
        return getattr(self._owner, self._field.attr)

    @property
    def boolean(self):
        """
        True when the flag takes no argument ("-name" alone sets it).
        """
        shape = self._field.shape
        if shape.custom:
            return bool(self.value.is_bool_flag())
        return shape.multiplicity == "single" and shape.kind is BOOL

    def set(self, text, /):
        """
        Apply one occurrence of the flag. Raises ValueError on bad input.
        """
        shape, attr = self._field.shape, self._field.attr
        match shape:
            case Shape(custom=True):
                self.value.set(text)
            case Shape(multiplicity="list"):
                self.value.append(text)
            case Shape(multiplicity="map"):
                key, separator, item = text.partition("=")
                if not separator:
                    raise ValueError(f"missing '=' in {quote(text)}")
                self.value[key] = item
            case Shape(optional=True):
                setattr(self._owner, attr, Maybe(shape.kind.parse(text)))
            case _:
                setattr(self._owner, attr, shape.kind.parse(text))

    @property
    def zero(self):
        """
        True when the bind-time default equals the kind's zero value.
        """
        shape = self._field.shape
        match shape:
            case Shape(custom=True):
                try:
                    return self._default == str(shape.kind())
                except TypeError:
                    return False
            case Shape(multiplicity="list"):
                return self._default == "[]"
            case Shape(multiplicity="map"):
                return self._default == "{}"
            case _:
                return self._default == shape.kind.format(shape.kind.zero)

    def __str__(self):
        shape, value = self._field.shape, self.value
        match shape:
            case Shape(custom=True):
                return str(value)
            case Shape(multiplicity="list"):
                return "[%s]" % " ".join(value)
            case Shape(multiplicity="map"):
                return "{%s}" % " ".join(f"{key}={value[key]}" for key in sorted(value))
            case Shape(optional=True):
                return shape.kind.format(value.value if value.present else shape.kind.zero)
            case _:
                return shape.kind.format(value)


class FlagSet:
    """
    The flags of one command instance, keyed by name.

    Iteration visits flags sorted by name. parse() returns the positional
    arguments left after the flags; they are also kept in args.
    """

    def __init__(self, specs=(), /):
        self._flags = {}
        self._args = []
        for spec in specs:
            if spec.name in self._flags:
                raise ConfigurationError(f"flag redefined: {spec.name}", FaultCode.DUPLICATE_FLAG)
            self._flags[spec.name] = spec

    args = mirror("args")

    def __len__(self):
        return len(self._flags)

    def __iter__(self):
        return iter(self.visit())

    def __contains__(self, name):
        return name in self._flags

    def __getitem__(self, name):
        return self._flags[name]

    def lookup(self, name, /):
        return self._flags.get(name)

    def visit(self):
        """
        Return the flags sorted by name.
        """
        return [self._flags[name] for name in sorted(self._flags)]

    def parse(self, tokens, /):
        """
        Parse flags from the front of tokens and return the positional rest.

        Raises FlagError for malformed or rejected flags, and HelpRequested
        for -h/-help/--help when no flag of that name is defined.
        """
        tokens = list(tokens)
        while tokens:
            token = tokens[0]
            if len(token) < 2 or token[0] != "-":
                break
            dashes = 1
            if token[1] == "-":
                dashes = 2
                if len(token) == 2:
                    tokens.pop(0)
                    break
            name = token[dashes:]
            if not name or name[0] in "-=":
                raise FlagError(f"bad flag syntax: {token}", code=FaultCode.MALFORMED_FLAG)
            tokens.pop(0)
            name, equals, value = name.partition("=")
            if (spec := self._flags.get(name)) is None:
                if name in ("help", "h"):
                    raise HelpRequested()
                raise FlagError(f"flag provided but not defined: -{name}", code=FaultCode.UNKNOWN_FLAG)
            if spec.boolean:
                if equals:
                    try:
                        spec.set(value)
                    except ValueError as exception:
                        raise FlagError(
                            f"invalid boolean value {quote(value)} for -{name}: {exception}",
                            code=FaultCode.INVALID_FLAG_VALUE,
                        ) from exception
                else:
                    try:
                        spec.set("true")
                    except ValueError as exception:
                        raise FlagError(
                            f"invalid boolean flag {name}: {exception}", code=FaultCode.INVALID_FLAG_VALUE
                        ) from exception
                continue
            if not equals:
                if not tokens:
                    raise FlagError(f"flag needs an argument: -{name}", code=FaultCode.MISSING_FLAG_VALUE)
                value = tokens.pop(0)
            try:
                spec.set(value)
            except ValueError as exception:
                raise FlagError(
                    f"invalid value {quote(value)} for flag -{name}: {exception}",
                    code=FaultCode.INVALID_FLAG_VALUE,
                ) from exception
        self._args = tokens
        return list(tokens)

    def defaults(self):
        """
        Render the flag listing used in help output.

            -name placeholder
                \tusage (default X)

        Single-letter boolean flags keep their usage on the same line.
        """
        lines = []
        for spec in self.visit():
            line = f"  -{spec.name}"
            if spec.placeholder:
                line += " " + spec.placeholder
            line += "\t" if len(line) <= 4 else "\n    \t"
            line += spec.usage.replace("\n", "\n    \t")
            if not spec.zero:
                plain = spec.kind == "string" and not spec.optional and spec.multiplicity == "single"
                line += f" (default {quote(spec.default) if plain else spec.default})"
            lines.append(line + "\n")
        return "".join(lines)


def compile_flags(command, /):
    """
    Build the FlagSet of a live command instance.

    Declared flags of the command come first, then flags of FlagGroup
    instances held in its public attributes (recursively). A flag name used
    twice is a ConfigurationError; an unsupported kind an UnsupportedFlagError.
    """
    specs, seen = [], set()

    def visit(group):
        if id(group) in seen:
            return
        seen.add(id(group))
        fields = declarations(type(group))
        for attr, field in fields:
            specs.append(FlagSpec(field, group))
        names = {attr for attr, field in fields}
        for attr, value in list(getattr(group, "__dict__", {}).items()):
            if not attr.startswith("_") and attr not in names and isinstance(value, FlagGroup):
                visit(value)

    if isinstance(command, FlagGroup):
        visit(command)
    flags = FlagSet(specs)
    logger.debug("bound %d flag(s) for %s", len(flags), type(command).__name__)
    return flags


__all__ = (
    "Field",
    "FlagGroup",
    "FlagSpec",
    "FlagSet",
    "flag",
    "derive_name",
    "split_tag",
    "unquote",
    "declarations",
    "compile_flags",
)
