from datetime import timedelta

from rich.pretty import pprint

from arbor import *

__prog__ = "tool"


class Transport(FlagGroup):
    timeout = flag(timedelta, "Give up after <duration>", default=timedelta(seconds=30))
    insecure = flag(bool, "Skip certificate verification")


class Add(Command):
    fetch = flag(bool, "f,Fetch the remote after adding it")
    tags = flag(list[str], "Track only <tag> (repeatable)")

    def __init__(self):
        self.transport = Transport()

    def main(self, args, /):
        name, url = args
        pprint({"name": name, "url": url, "fetch": self.fetch, "tags": self.tags, "transport": self.transport})


class Remove(Command):
    def main(self, args, /):
        for name in args:
            print(f"removed {name}")


class Show(Command):
    verbose = flag(Maybe[bool], "v,Include URLs (defaults to the configured style)")

    def main(self, args, /):
        if not args:
            raise errorf("no remote given")
        pprint({"remote": args[0], "verbose": self.verbose})

    def help(self, writer):
        writer.text("""
            Show one remote.

            With -v the fetch and push URLs are listed as well.
        """)


tree = CommandTree(summary="Example remote manager")
remote = tree.register(None, CommandNode("remote|r", summary="Manage remotes"))
tree.register(remote, CommandNode("add|a", "<name> <url>", "Add a remote", 2, 2, factory=Add))
tree.register(remote, CommandNode("remove|rm", "<name>...", "Remove remotes", 1, 0, factory=Remove))
tree.register(remote, CommandNode("show", "[-v] [<name>]", "Show a remote", 0, 1, factory=Show))
tree.register(None, compgen_node(tree.root, hidden=True))


if __name__ == '__main__':
    debug = config.debug_from_env("ARBOR_DEBUG")
    logs.setup(debug)
    tree.freeze().run(verbose=debug)
