"""
Arbor command tree.

Scope
- CommandNode: one entry of the tree. A group has children; a leaf has a
  factory producing the command object that runs. A node registered without
  a factory and without children is a placeholder leaf.
- CommandTree: the registry threaded through the program's entry point. Nodes
  are registered at startup, then the tree is frozen and only read.
- Command / Placeholder: base class of runnable commands, and the command used
  for nodes without a factory.
- split_name(), resolve(), walk(): pure functions shared by the dispatcher and
  the completion compiler, so that both resolve tokens the same way.

Names
- A raw node name is "primary|alias|...". Every alias addresses the same node;
  the primary name is the first one and is what help output displays.
- full_name(prog) joins the primary names of all ancestors and wraps the node's
  own segment in braces when it has aliases: "prog remote {add|a}".

Behavior
- Registration errors (empty names, duplicates, re-parenting, registering into
  a frozen tree, adding children to a node with a factory) raise
  ConfigurationError immediately.
"""
import weakref
from abc import ABC, abstractmethod
from collections import namedtuple

from .config import program_name
from .faults import *
from .flags import FlagGroup
from .logs import get_logger
from .utils import *

logger = get_logger("tree")

SEPARATOR = "|"

HELP_TOKENS = frozenset(("help", "-help", "--help", "-h", "/?"))

Walk = namedtuple("Walk", ("node", "rest", "help", "unknown"))


def is_help(token, /):
    """
    Return True when token is a request for help.
    """
    return token in HELP_TOKENS


def split_name(raw, /):
    """
    Split a raw node name into its aliases (primary name first).

    Raises ConfigurationError when any alias is empty.
    """
    if not isinstance(raw, str):
        raise TypeError("split_name() argument must be a string")
    names = raw.split(SEPARATOR)
    if not all(names):
        raise ConfigurationError("missing command name", FaultCode.INVALID_NAME)
    return tuple(names)


def resolve(node, token, /):
    """
    Return the child of node addressed by token (any alias), or None.
    """
    if not token:
        return None
    return node.children.get(token)


def walk(root, tokens, /):
    """
    Descend from root through tokens while the current node has children.

    - Help tokens are recorded and skipped; help does not stop descent.
    - Empty tokens are skipped.
    - A token naming a child (any alias) descends into it.
    - Any other token stops the walk; it is reported as unknown.

    Returns Walk(node, rest, help, unknown) where rest holds the tokens left
    after the walk and unknown is the offending token or None.
    """
    node, rest, help = root, list(tokens), False
    while rest and node.children:
        token = rest.pop(0)
        if is_help(token):
            help = True
        elif not token:
            continue
        elif (child := resolve(node, token)) is not None:
            logger.debug("descending into %r via %r", child.primary_name, token)
            node = child
        else:
            return Walk(node, rest, help, token)
    return Walk(node, rest, help, None)


class CommandNode(metaclass=Reflective):
    """
    A named entry of the command tree.

    Parameters
    - name: "primary|alias|..." ("" only for the root).
    - usage: argument synopsis shown after the command path in usage lines.
    - summary: one-line description without trailing period.
    - min_args / max_args: accepted positional count; max_args < min_args
      means unbounded.
    - hidden: omit from command listings and completion.
    - factory: callable returning the command object; absent means the node
      runs a Placeholder.
    """
    __introspectable__ = (
        "name",
        "usage",
        "summary",
        "min_args",
        "max_args",
        "hidden",
        "factory",
        "children",
    )
    __displayable__ = (
        "name",
        "usage",
        "summary",
        "min_args",
        "max_args",
        "hidden",
    )

    def __init__(
            self,
            name="",
            /,
            usage="",
            summary="",
            min_args=0,
            max_args=0,
            hidden=False,
            factory=Unset
    ):
        cls = type(self)
        for label, value in (("name", name), ("usage", usage), ("summary", summary)):
            if not isinstance(value, str):
                raise TypeError(f"{cls.__typename__} {label!r} must be a string")
        for label, value in (("min_args", min_args), ("max_args", max_args)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{cls.__typename__} {label!r} must be an integer")
        if not isinstance(hidden, bool):
            raise TypeError(f"{cls.__typename__} 'hidden' must be a boolean")
        if factory is not Unset and not callable(factory):
            raise TypeError(f"{cls.__typename__} 'factory' must be callable")
        self._name = name
        self._usage = usage.strip()
        self._summary = summary.strip()
        self._min_args = min_args
        self._max_args = max_args
        self._hidden = hidden
        self._factory = coalesce(factory)
        self._children = {}
        self._parent = None
        self._registered = False
        self._frozen = False

    @property
    def parent(self):
        """
        The parent node, or None for a root (or a node not registered yet).
        """
        return self._parent() if self._parent is not None else None

    @property
    def aliases(self):
        """
        All names of the node, primary first (empty for the root).
        """
        return split_name(self._name) if self._name else ()

    @property
    def primary_name(self):
        return self._name.split(SEPARATOR, 1)[0]

    @property
    def unbounded(self):
        """
        True when the node accepts any number of positionals above min_args.
        """
        return self._max_args < self._min_args

    @property
    def frozen(self):
        return self._frozen

    def add(self, child, /):
        """
        Register child under this node and return it.
        """
        if not isinstance(child, CommandNode):
            raise TypeError(f"{type(self).__typename__} child must be a command node")
        if self._frozen:
            raise ConfigurationError(
                f"command tree is frozen, cannot add: {child.name}", FaultCode.FROZEN_TREE
            )
        if child._registered:
            raise ConfigurationError(
                f"command already added to a parent: {child.name}", FaultCode.REPARENTED_COMMAND
            )
        if self._factory is not None:
            raise ConfigurationError(
                f"command with a factory cannot have children: {self.primary_name or '<root>'}",
                FaultCode.INVALID_NAME,
            )
        names = split_name(child.name)
        for index, name in enumerate(names):
            if name in self._children or name in names[:index]:
                raise ConfigurationError(f"duplicate command name: {name}", FaultCode.DUPLICATE_NAME)
        child._parent = weakref.ref(self)
        child._registered = True
        for name in names:
            self._children[name] = child
        logger.debug("registered %r under %r", child.name, self.primary_name)
        return child

    def subcommands(self):
        """
        Return the distinct child nodes sorted by primary name.
        """
        unique = {id(child): child for child in self._children.values()}
        return sorted(unique.values(), key=lambda child: child.primary_name)

    def full_name(self, prefix="", /):
        """
        Return "prefix parent... name" with the node's own segment in braces
        when it has aliases.
        """
        segments = []
        node = self.parent
        while node is not None and node.name:
            segments.append(node.primary_name)
            node = node.parent
        segments.append(prefix)
        segments.reverse()
        if self._name:
            segments.append(f"{{{self._name}}}" if SEPARATOR in self._name else self._name)
        return " ".join(segment for segment in segments if segment).strip()

    def new(self):
        """
        Instantiate the node's command (a Placeholder when there is no factory).
        """
        if self._factory is None:
            return Placeholder(self)
        return self._factory()

    def nodes(self):
        """
        Yield this node and all its descendants, depth first, sorted by name.
        """
        yield self
        for child in self.subcommands():
            yield from child.nodes()

    def freeze(self):
        """
        Make this node and its descendants read-only.
        """
        for node in self.nodes():
            node._frozen = True
        return self


class CommandTree:
    """
    The command tree of one program.

    Build it at startup, freeze() it, and hand it to the entry point:

        tree = CommandTree("tool", summary="Example tool")
        remote = tree.register(None, CommandNode("remote|r", summary="Manage remotes"))
        tree.register(remote, CommandNode("add", min_args=2, max_args=2, factory=Add))
        tree.freeze().run()
    """

    def __init__(self, prog=Unset, /, usage="", summary=""):
        if not isinstance(prog, str | Unset):
            raise TypeError("command-tree 'prog' must be a string")
        self._prog = prog
        self._root = CommandNode("", usage=usage, summary=summary)

    root = mirror("root")

    @property
    def prog(self):
        """
        Program name: the explicit one, or the host's (see config.program_name).
        """
        return coalesce(self._prog) or program_name()

    @property
    def frozen(self):
        return self._root.frozen

    def register(self, parent, node, /):
        """
        Register node under parent (None means the root) and return node.
        """
        return (self._root if parent is None else parent).add(node)

    def freeze(self):
        self._root.freeze()
        return self

    def dispatcher(self, **options):
        """
        Return a Dispatcher for this tree (options are passed through).
        """
        from .dispatch import Dispatcher
        return Dispatcher(self._root, prog=self.prog, **options)

    def run(self, tokens=Unset, /, **options):
        """
        Dispatch tokens (sys.argv[1:] by default) and terminate.
        """
        return self.dispatcher(**options).run(tokens)


class Command(FlagGroup, ABC):
    """
    Base class of runnable commands.

    Subclasses declare flags with flag() and implement main(args). They may
    also define help(writer) to replace the summary in help output.
    """

    @abstractmethod
    def main(self, args, /):
        raise NotImplementedError


class Placeholder(Command):
    """
    Command of a node registered without a factory.
    """

    def __init__(self, node, /):
        self._node = node

    def main(self, args, /):
        commands = [child for child in self._node.subcommands() if not child.hidden]
        if not self._node.children:
            raise UsageError("command not implemented", code=FaultCode.UNKNOWN_COMMAND)
        width = max((len(child.primary_name) for child in commands), default=0)
        lines = ["specify command:"]
        for child in commands:
            if child.summary:
                lines.append(f"  {child.primary_name:<{width}}  {child.summary}")
            else:
                lines.append(f"  {child.primary_name}")
        raise UsageError("\n".join(lines), code=FaultCode.UNKNOWN_COMMAND)


__all__ = (
    "SEPARATOR",
    "HELP_TOKENS",
    "Walk",
    "is_help",
    "split_name",
    "resolve",
    "walk",
    "CommandNode",
    "CommandTree",
    "Command",
    "Placeholder",
)
