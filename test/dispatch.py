"""
Tests for the dispatcher.

Scope
- parse(): node resolution, help scoping, flag binding and positional counts.
- Dispatcher.run(): rendering of every outcome and the exit status handed to
  the exit callable.
- Failure handling: command errors, verbose tracebacks and rendering panics.

Conventions
- Output goes to a rich Console over a StringIO; exit is a recorder, so no
  test terminates the interpreter.
"""
import io
import sys
import unittest
from unittest import TestCase, mock

from rich.console import Console

from arbor.completion import compile_completion
from arbor.dispatch import *
from arbor.faults import *
from arbor.flags import flag
from arbor.tree import *


class Record(Command):
    opt = flag(str, "Option description")

    def __init__(self, calls):
        self._calls = calls

    def main(self, args, /):
        self._calls.append((self.opt, list(args)))


class Refused(CommandException):
    __status__ = 4


class Fail(Command):
    mode = flag(str, "Failure <mode>")

    def main(self, args, /):
        match self.mode:
            case "exit":
                raise ExitCode(3)
            case "usage":
                raise error("bad input")
            case "help":
                raise HelpRequested()
            case "refused":
                raise Refused("failed")
            case _:
                raise RuntimeError("boom")


class Broken(Command):

    def main(self, args, /):
        pass

    def help(self, writer):
        raise RuntimeError("render")


class DispatchCase(TestCase):
    """
    Shared fixture: a small tree run with a recording exit and console.
    """

    def setUp(self):
        self.calls = []
        self.exits = []
        self.stream = io.StringIO()

        def record():
            return Record(self.calls)

        self.tree = CommandTree("bin", summary="Test tool")
        tree = self.tree
        self.cmd1 = tree.register(None, CommandNode("cmd1|c1", summary="Command 1", factory=record))
        tree.register(None, CommandNode("exact", min_args=2, max_args=2, factory=record))
        tree.register(None, CommandNode("range", min_args=1, max_args=2, factory=record))
        tree.register(None, CommandNode("many", min_args=1, max_args=0, factory=record))
        tree.register(None, CommandNode("fail", factory=Fail))
        tree.register(None, CommandNode("broken", factory=Broken))
        self.grp = tree.register(None, CommandNode("grp", summary="Group"))
        tree.register(self.grp, CommandNode("cmd-2"))
        tree.freeze()

    def run_tokens(self, tokens=None, verbose=False):
        dispatcher = Dispatcher(
            self.tree.root,
            prog="bin",
            exit=self.exits.append,
            console=Console(file=self.stream, width=120),
            verbose=verbose,
        )
        status = dispatcher.run() if tokens is None else dispatcher.run(tokens)
        self.assertEqual(self.exits, [status])
        return status, self.stream.getvalue()


class ParseTest(DispatchCase):

    def testResolvesAlias(self):
        result = parse(self.tree.root, ["c1", "-opt", "x"])
        self.assertIs(result.node, self.cmd1)
        self.assertIs(result.outcome, Outcome.OK)
        self.assertIsNone(result.error)
        self.assertEqual(result.args, [])
        self.assertEqual(result.command.opt, "x")

    def testArgumentCounts(self):
        for tokens, message in (
                (["exact", "a"], "command requires 2 argument(s)"),
                (["range"], "command requires at least 1 argument(s)"),
                (["range", "a", "b", "c"], "command accepts at most 2 argument(s)"),
                (["many"], "command requires at least 1 argument(s)"),
                (["cmd1", "a"], "command does not accept any arguments"),
        ):
            result = parse(self.tree.root, tokens)
            self.assertIs(result.outcome, Outcome.USAGE_ERROR, tokens)
            self.assertEqual(str(result.error), message)
            self.assertIs(result.error.code, FaultCode.ARGUMENT_COUNT)
            self.assertEqual(result.args, [])

    def testAcceptedCounts(self):
        for tokens, args in (
                (["exact", "a", "b"], ["a", "b"]),
                (["range", "a", "b"], ["a", "b"]),
                (["many", "a", "b", "c", "d"], ["a", "b", "c", "d"]),
                (["exact", "--", "-a", "b"], ["-a", "b"]),
        ):
            result = parse(self.tree.root, tokens)
            self.assertIs(result.outcome, Outcome.OK, tokens)
            self.assertEqual(result.args, args)

    def testHelpScoping(self):
        for tokens, node in (
                (["help"], self.tree.root),
                (["help", "c1"], self.cmd1),
                (["c1", "help"], self.cmd1),
                (["c1", "-h"], self.cmd1),
                (["c1", "--help"], self.cmd1),
                (["grp", "help"], self.grp),
                (["-help", "grp"], self.grp),
        ):
            result = parse(self.tree.root, tokens)
            self.assertIs(result.outcome, Outcome.HELP_REQUESTED, tokens)
            self.assertIs(result.node, node, tokens)

    def testUnknownCommand(self):
        result = parse(self.tree.root, ["grp", "nope"])
        self.assertIs(result.node, self.grp)
        self.assertIs(result.outcome, Outcome.USAGE_ERROR)
        self.assertEqual(str(result.error), 'unknown command "nope"')
        self.assertIs(result.error.code, FaultCode.UNKNOWN_COMMAND)

    def testFlagError(self):
        result = parse(self.tree.root, ["cmd1", "-x"])
        self.assertIs(result.outcome, Outcome.USAGE_ERROR)
        self.assertIsInstance(result.error, FlagError)

    def testOutcomeOf(self):
        self.assertIs(outcome_of(None), Outcome.OK)
        self.assertIs(outcome_of(HelpRequested()), Outcome.HELP_REQUESTED)
        self.assertIs(outcome_of(ExitCode(1)), Outcome.EXIT_CODE)
        self.assertIs(outcome_of(UsageError("x")), Outcome.USAGE_ERROR)

    def testLogsResolution(self):
        with self.assertLogs("arbor.dispatch", level="DEBUG") as logs:
            parse(self.tree.root, ["c1"])
        self.assertTrue(any("ok" in line for line in logs.output))


class RunTest(DispatchCase):

    def testSuccess(self):
        status, output = self.run_tokens(["c1", "-opt", "x"])
        self.assertEqual(status, 0)
        self.assertEqual(output, "")
        self.assertEqual(self.calls, [("x", [])])

    def testDefaultsToArgv(self):
        with mock.patch.object(sys, "argv", ["bin", "range", "a"]):
            status, _ = self.run_tokens()
        self.assertEqual(status, 0)
        self.assertEqual(self.calls, [("", ["a"])])

    def testUsageError(self):
        status, output = self.run_tokens(["cmd1", "a"])
        self.assertEqual(status, 2)
        self.assertEqual(output, (
            "Error: command does not accept any arguments\n"
            "Usage: bin {cmd1|c1}\n"
            "       bin {cmd1|c1} help\n"
        ))
        self.assertEqual(self.calls, [])

    def testUnknownCommand(self):
        status, output = self.run_tokens(["nope"])
        self.assertEqual(status, 2)
        self.assertEqual(output, (
            'Error: unknown command "nope"\n'
            "Usage: bin <command> [options] ...\n"
            "       bin <command> help\n"
            "       bin help [command]\n"
        ))

    def testHelp(self):
        status, output = self.run_tokens(["c1", "-h"])
        self.assertEqual(status, 0)
        self.assertEqual(output, (
            "Usage: bin {cmd1|c1}\n"
            "       bin {cmd1|c1} help\n"
            "\n"
            "Command 1.\n"
            "\n"
            "Options:\n"
            "  -opt string\n"
            "    \tOption description\n"
        ))

    def testRootHelp(self):
        status, output = self.run_tokens(["help"])
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith("Usage: bin <command> [options] ...\n"))
        self.assertIn("\nTest tool.\n\nCommands:\n", output)
        self.assertIn("  grp     Group\n", output)

    def testGroupWithoutCommand(self):
        status, output = self.run_tokens(["grp"])
        self.assertEqual(status, 2)
        self.assertTrue(output.startswith("Error: specify command:\n  cmd-2\nUsage: bin grp <command>"))

    def testFlagError(self):
        status, output = self.run_tokens(["cmd1", "-x"])
        self.assertEqual(status, 2)
        self.assertTrue(output.startswith("Error: flag provided but not defined: -x\nUsage: bin {cmd1|c1}\n"))


class FailureTest(DispatchCase):

    def testExitCode(self):
        self.assertEqual(self.run_tokens(["fail", "-mode", "exit"]), (3, ""))

    def testUsageFromMain(self):
        status, output = self.run_tokens(["fail", "-mode=usage"])
        self.assertEqual(status, 2)
        self.assertEqual(output, "Error: bad input\nUsage: bin fail\n       bin fail help\n")

    def testHelpFromMain(self):
        status, output = self.run_tokens(["fail", "-mode", "help"])
        self.assertEqual(status, 0)
        self.assertTrue(output.startswith("Usage: bin fail\n"))
        self.assertIn("  -mode mode\n    \tFailure mode\n", output)

    def testCommandException(self):
        self.assertEqual(self.run_tokens(["fail", "-mode", "refused"]), (4, "Error: failed\n"))

    def testUnexpectedException(self):
        self.assertEqual(self.run_tokens(["fail"]), (1, "Error: boom\n"))

    def testVerboseTraceback(self):
        status, output = self.run_tokens(["fail"], verbose=True)
        self.assertEqual(status, 1)
        self.assertIn("RuntimeError", output)
        self.assertIn("boom", output)

    def testRenderPanic(self):
        status, output = self.run_tokens(["broken", "help"])
        self.assertEqual(status, 2)
        self.assertTrue(output.startswith("panic: render\n\n"))
        self.assertIn("Traceback", output)

    def testRenderPanicIsLogged(self):
        with self.assertLogs("arbor.dispatch", level="DEBUG") as logs:
            self.run_tokens(["broken", "help"])
        self.assertTrue(any("render failed [11202]: render" in line for line in logs.output))


class Run(Command):
    v = flag(bool, "Verbose")

    def main(self, args, /):
        pass


class ScenarioTest(TestCase):
    """
    root -> group "group|g" -> leaf "run" (1 to 2 arguments, boolean -v).
    """

    def setUp(self):
        self.root = CommandNode("")
        self.group = self.root.add(CommandNode("group|g", summary="Group"))
        self.leaf = self.group.add(CommandNode("run", min_args=1, max_args=2, factory=Run))
        self.root.freeze()

    def testRun(self):
        result = parse(self.root, ["g", "run", "-v", "x"])
        self.assertIs(result.node, self.leaf)
        self.assertIs(result.outcome, Outcome.OK)
        self.assertIs(result.command.v, True)
        self.assertEqual(result.args, ["x"])

    def testTooFewArguments(self):
        result = parse(self.root, ["g", "run"])
        self.assertEqual(str(result.error), "command requires at least 1 argument(s)")

    def testUnknown(self):
        self.assertEqual(str(parse(self.root, ["bogus"]).error), 'unknown command "bogus"')

    def testHelpScopedToGroup(self):
        result = parse(self.root, ["g", "-h"])
        self.assertIs(result.outcome, Outcome.HELP_REQUESTED)
        self.assertIs(result.node, self.group)
        self.assertEqual(result.node.primary_name, "group")

    def testCompletion(self):
        spec = compile_completion(self.root, "bin")
        self.assertEqual(set(spec["_"].words), {"g", "help"})
        self.assertEqual(spec["_group_run"].words, ("-v",))
        self.assertEqual(dict(spec["_group_run"].args), {})
        self.assertTrue(spec["_group_run"].bashdefault)
        self.assertEqual(spec.locate(["g", "run"]), ("_group_run", False))


class EntryPointTest(DispatchCase):

    def testTreeRun(self):
        status = run(
            self.tree, ["c1"], exit=self.exits.append, console=Console(file=self.stream)
        )
        self.assertEqual(status, 0)
        self.assertEqual(self.calls, [("", [])])

    def testNodeRun(self):
        status = run(
            self.tree.root, ["nope"], prog="bin", exit=self.exits.append, console=Console(file=self.stream)
        )
        self.assertEqual(status, 2)
        self.assertTrue(self.stream.getvalue().startswith('Error: unknown command "nope"\nUsage: bin '))

    def testInvalidDispatcher(self):
        with self.assertRaises(TypeError):
            Dispatcher("root")  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            Dispatcher(self.tree.root, exit=1)  # type: ignore[arg-type]

    def testProperties(self):
        dispatcher = self.tree.dispatcher(verbose=True)
        self.assertIs(dispatcher.root, self.tree.root)
        self.assertEqual(dispatcher.prog, "bin")
        self.assertTrue(dispatcher.verbose)


if __name__ == "__main__":
    unittest.main()
