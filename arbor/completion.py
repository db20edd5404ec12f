"""
Bash completion compiler.

Scope
- compile_completion(): walk a command tree once, offline, and build a
  CompletionSpec: one Entry per visible node plus an alias redirection table.
- CompletionSpec.script(): render a bash function that re-implements the
  dispatcher's walk over COMP_WORDS and registers it with `complete -F`.
- CompletionSpec.locate() / complete(): the same state machine in Python,
  used to check the script's tables against the dispatcher.
- Compgen: ready-made leaf command printing the script (or writing it to
  the file given with -out).

Tables
- Every node gets a key derived from its path: names are made bash-safe
  (characters outside [0-9A-Za-z_] become "_"), groups end with "_", and the
  root group is "_". For example "_", "_remote_", "_remote_add".
- Group entries complete "help" plus one word per visible child, its shortest
  alias. Longer aliases still resolve through the redirection table.
- Leaf entries complete "-name" for each flag; flags taking a value also get a
  value class: files ("-f") for a <file> placeholder, directories ("-d") for
  <dir>, free words ("-W ''") otherwise.
- Nodes accepting positional arguments add "-o bashdefault".
- Each non-primary alias gets a redirection from its key to the canonical one.

Walk (script and Python alike)
- Help tokens are recorded and skipped, empty words are skipped.
- Words outside [0-9A-Za-z_-] stop completion.
- Aliases fold through the redirection table; the walk stops at the first leaf.
- At a leaf, "-name value" and "-name=value" complete the flag's value class,
  unless help was recorded. A previous word that is itself a flag takes
  precedence over a "-name=" current word.
"""
import re
import shlex
from collections import namedtuple

from .config import program_name
from .faults import *
from .flags import compile_flags, flag
from .logs import get_logger
from .tree import *
from .utils import *

logger = get_logger("completion")

_UNSAFE = re.compile(r"[^0-9A-Za-z_]")
_WORD = re.compile(r"[0-9A-Za-z_-]+")
_FLAG = re.compile(r"-([0-9A-Za-z_-]+)")
_ASSIGN = re.compile(r"-([0-9A-Za-z_-]+)=")

CLASSES = {
    "file": ("-f",),
    "dir": ("-d",),
    "word": ("-W", ""),
}

Completion = namedtuple("Completion", ("key", "compgen", "current"))


def safe_name(name, /):
    """
    Replace every character outside [0-9A-Za-z_] with "_".
    """
    return _UNSAFE.sub("_", name)


def path_key(node, /):
    """
    Return the table key of node ("_" for a root group).
    """
    lineage = []
    while node is not None:
        lineage.append(node)
        node = node.parent
    return "".join(
        safe_name(node.primary_name) + ("_" if node.children else "") for node in reversed(lineage)
    )


def completion_word(node, /):
    """
    Return the word offered for node in its parent's list: the shortest alias,
    the earliest declared one on ties ("group|g" -> "g").
    """
    return min(node.aliases, key=len)


def _quote(text):
    return "'%s'" % text.replace("'", "'\\''")


class Entry(metaclass=Reflective):
    """
    Completion data of one node.

    - key: table key of the node.
    - name: bash-safe primary name.
    - words: completable words, sorted.
    - bashdefault: fall back to default completion (node takes positionals).
    - refs: redirection keys of the node's non-primary aliases.
    - args: value class ("file", "dir", "word") per bash-safe flag name.
    """
    __introspectable__ = ("key", "name", "words", "bashdefault", "refs", "args")

    def __init__(self, key, name, words, bashdefault, refs=(), args=None):
        self._key = key
        self._name = name
        self._words = tuple(words)
        self._bashdefault = bashdefault
        self._refs = tuple(refs)
        self._args = dict(args or {})

    @property
    def compgen(self):
        """
        Arguments passed to compgen for this node's word list.
        """
        return ("-W", " ".join(self._words)) + (("-o", "bashdefault") if self._bashdefault else ())

    @property
    def spec(self):
        """
        The compgen arguments as bash source ("-W 'a b' -o bashdefault").
        """
        return "-W %s%s" % (_quote(" ".join(self._words)), " -o bashdefault" if self._bashdefault else "")


class CompletionSpec(metaclass=Reflective):
    """
    Completion tables of one program.
    """
    __introspectable__ = ("prog", "root", "entries", "refs")
    __displayable__ = ("prog", "root")

    def __init__(self, prog, root, entries, refs):
        self._prog = prog
        self._root = root
        self._entries = dict(entries)
        self._refs = dict(refs)

    def __getitem__(self, key):
        return self._entries[key]

    def __contains__(self, key):
        return key in self._entries

    def locate(self, words, /):
        """
        Walk typed words (excluding the program name and the word under the
        cursor) like the generated script does.

        Returns (key, help) of the node reached, or None when completion stops.
        """
        key, help = self._root, False
        for word in words:
            if not key.endswith("_"):
                break
            if is_help(word):
                help = True
                continue
            if not word:
                continue
            if not _WORD.fullmatch(word):
                return None
            key += word.replace("-", "_")
            key = self._refs.get(key, key)
            if key in self._entries:
                break
            key += "_"
            if key not in self._entries:
                return None
        return key, help

    def complete(self, words, current="", /):
        """
        Return the Completion (key, compgen arguments, word to complete) for
        the given typed words and current word, or None for no completion.
        """
        if (located := self.locate(words)) is None:
            return None
        key, help = located
        entry = self._entries[key]
        if key.endswith("_"):
            return Completion(key, entry.compgen, current)
        if help:
            return None
        previous = words[-1] if words else self._prog
        name, strip = "", False
        if match := _FLAG.fullmatch(previous):
            name = match.group(1)
        elif match := _ASSIGN.match(current):
            name, strip = match.group(1), True
        if (value := entry.args.get(name.replace("-", "_"))) is None:
            return Completion(key, entry.compgen, current)
        if strip:
            current = current[len(name) + 2:]
        return Completion(key, CLASSES[value], current)

    def script(self):
        """
        Render the bash completion script.
        """
        function = "_" + safe_name(self._prog)
        declarations = []
        for key in sorted(self._entries):
            entry = self._entries[key]
            declaration = f"\tlocal _cmd{key}=({entry.spec})"
            for ref in entry.refs:
                declaration += f" \\\n\t      _ref{ref}=_cmd{self._refs[ref]}"
            for arg in sorted(entry.args):
                declaration += f" \\\n\t      _arg{key}_{arg}=({shlex.join(CLASSES[entry.args[arg]])})"
            declarations.append(declaration)
        return _TEMPLATE.format(
            function=function,
            declarations="\n".join(declarations),
            root=self._root,
            prog=self._prog,
        )


_TEMPLATE = """\
{function}() {{
{declarations}

	# Find current command
	local comp=_cmd{root} cur help
	for (( i=1; i<COMP_CWORD; i++ )); do
		[[ $comp == *_ ]] || break
		cur="${{COMP_WORDS[i]}}"
		case "$cur" in (help|-help|--help|-h|"/?")
			help=1
			continue;;
		esac
		[[ -z "$cur" ]] && continue
		[[ "$cur" =~ ^[0-9A-Za-z_-]+$ ]] || return 0
		comp=${{comp}}${{cur//-/_}}

		# Alias check
		cur=_ref${{comp#_cmd}}
		[[ ${{!cur+ref}} ]] && comp=${{!cur}}

		# Final command check (no '_' suffix)
		[[ ${{!comp+last}} ]] && break
		comp=${{comp}}_
		[[ ${{!comp+more}} ]] || return 0
	done

	# If final command (no '_' suffix), complete current argument
	cur="${{COMP_WORDS[COMP_CWORD]}}"
	case $comp in
	*_) ;;
	*)
		[[ $help ]] && return 0
		local prev="${{COMP_WORDS[COMP_CWORD-1]}}" strip
		if [[ ! "$prev" =~ ^-([0-9A-Za-z_-]+)$ && "$cur" =~ ^-([0-9A-Za-z_-]+)= ]]; then
			strip=1
		fi
		local arg=_arg${{comp#_cmd}}_${{BASH_REMATCH[1]//-/_}}
		if [[ ${{!arg+special}} ]]; then
			comp=$arg
			[[ $strip ]] && cur="${{cur#-${{BASH_REMATCH[1]}}=}}"
		fi
		;;
	esac

	comp=$comp[@]
	COMPREPLY=($(compgen "${{!comp}}" -- "$cur"))
}}

complete -F {function} {prog}
"""


def compile_completion(root, prog=Unset, /):
    """
    Build the CompletionSpec of the tree rooted at root.

    Hidden nodes (and everything below them) are left out. Two names that
    become the same bash-safe key raise ConfigurationError.
    """
    if not isinstance(root, CommandNode):
        raise TypeError("compile_completion() root must be a command node")
    prog = coalesce(prog) or program_name()
    entries, refs = {}, {}

    def visit(node, path):
        name = safe_name(node.primary_name)
        aliases = []
        if (parent := node.parent) is not None:
            for alias in node.aliases[1:]:
                if resolve(parent, alias) is node:
                    aliases.append(ref := path + safe_name(alias))
                    refs[ref] = path + name

        if node.children:
            key = path + name + "_"
            words, seen = ["help"], {"help"}
            for child in node.subcommands():
                if child.hidden:
                    continue
                for alias in child.aliases:
                    if (safe := safe_name(alias)) in seen:
                        raise ConfigurationError(
                            f"completion name collision: {alias!r} under {node.full_name(prog)!r}",
                            FaultCode.COMPLETION_COLLISION,
                        )
                    seen.add(safe)
                words.append(completion_word(child))
                visit(child, key)
            words.sort()
            args = {}
        else:
            key = path + name
            words, args = [], {}
            for spec in compile_flags(node.new()).visit():
                words.append("-" + spec.name)
                if spec.completion is not None:
                    args[safe_name(spec.name)] = spec.completion

        if key in entries:
            raise ConfigurationError(
                f"completion name collision: {key!r}", FaultCode.COMPLETION_COLLISION
            )
        entries[key] = Entry(key, name, words, node.max_args > 0 or node.unbounded, aliases, args)

    visit(root, "")
    logger.debug("compiled completion for %d node(s) of %r", len(entries), prog)
    return CompletionSpec(prog, path_key(root), entries, refs)


def compgen(root, prog=Unset, /):
    """
    Return the bash completion script for the tree rooted at root.
    """
    return compile_completion(root, prog).script()


class Compgen(Command):
    """
    Print the bash completion script of a command tree.
    """
    out = flag(str, "Write the script to <file> instead of standard output")

    def __init__(self, root, prog=Unset, /):
        self._root = root
        self._prog = prog

    def main(self, args, /):
        write_file(self.out, compgen(self._root, self._prog))


def compgen_node(root, /, name="compgen", prog=Unset, hidden=False):
    """
    Return a leaf node running Compgen over root, ready to be registered.
    """
    return CommandNode(
        name,
        usage="[-out <file>]",
        summary="Generate bash completion script",
        hidden=hidden,
        factory=lambda: Compgen(root, prog),
    )


__all__ = (
    "CLASSES",
    "Completion",
    "Entry",
    "CompletionSpec",
    "safe_name",
    "path_key",
    "completion_word",
    "compile_completion",
    "compgen",
    "Compgen",
    "compgen_node",
)
