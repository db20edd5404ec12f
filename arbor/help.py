"""
Usage and help text.

Writer accumulates the text shown for a resolved node: usage lines, help
(summary or the command's own help, followed by the command listing or the
flag listing) and usage errors. Commands that define help(writer) use
section() and text() to lay out extended help:

    def help(self, writer):
        writer.text('''
            Copy files between remotes.
        ''')
        writer.section("Examples")
        writer.write("  tool copy a:/x b:/y\\n")
"""
import io

from .flags import compile_flags
from .utils import dedent


class Writer(io.StringIO):
    """
    Text buffer for one node's usage, help and error output.
    """

    def __init__(self, node, prog="", /):
        super().__init__()
        self._node = node
        self._prog = prog

    @property
    def node(self):
        return self._node

    def section(self, name="", /):
        """
        Start a new section, separated from previous text by one blank line.
        """
        text = self.getvalue()
        if text and not text.endswith("\n\n"):
            self.write("\n" if text.endswith("\n") else "\n\n")
        if name:
            self.write(f"{name}:\n")

    def text(self, text, /):
        """
        Write text as its own paragraph, with indentation and surrounding
        whitespace removed.
        """
        self.section()
        self.write(dedent(text).strip() + "\n")

    def usage(self):
        name = self._node.full_name(self._prog)
        if self._node.children:
            usage = self._node.usage or "<command> [options] ..."
            self.write(f"Usage: {name} {usage}\n")
            self.write(f"       {name} <command> help\n")
            self.write(f"       {name} help [command]\n")
        else:
            usage = f" {self._node.usage}" if self._node.usage else ""
            self.write(f"Usage: {name}{usage}\n")
            self.write(f"       {name} help\n")

    def help(self):
        """
        Write usage, description and the command or flag listing.
        """
        self.usage()
        command = self._node.new()
        if callable(getattr(command, "help", None)):
            self.write("\n")
            command.help(self)
        elif self._node.summary:
            self.write(f"\n{self._node.summary}.\n")
        if self._node.children:
            self.section("Commands")
            self.commands()
        else:
            mark = len(self.getvalue())
            self.section("Options")
            if options := compile_flags(command).defaults():
                self.write(options)
            else:
                self.seek(mark)
                self.truncate(mark)

    def error(self, message, /):
        """
        Write "Error: message" followed by usage.
        """
        self.write(f"Error: {message.strip()}\n")
        self.usage()

    def commands(self):
        """
        List visible child commands with their summaries.
        """
        children = [child for child in self._node.subcommands() if not child.hidden]
        width = max((len(child.primary_name) for child in children), default=0)
        for child in children:
            if child.summary:
                self.write(f"  {child.primary_name:<{width}}  {child.summary}\n")
            else:
                self.write(f"  {child.primary_name}\n")


__all__ = (
    "Writer",
)
