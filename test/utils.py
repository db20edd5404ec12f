"""
Tests for the shared utilities.

Scope
- Unset sentinel and coalesce().
- mirror() and the Reflective metaclass (typename, read-only fields, repr).
- dedent() on tab-indented help text.
- tally(), is_stdio() and write_file().
"""
import contextlib
import copy
import io
import os
import tempfile
import unittest
from unittest import TestCase

from arbor.utils import *


class UnsetTest(TestCase):

    def testSingleton(self):
        self.assertIs(UnsetType(), Unset)
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)

    def testFalsyButDistinct(self):
        self.assertFalse(Unset)
        self.assertIsNot(Unset, None)
        self.assertEqual(repr(Unset), "Unset")

    def testSealed(self):
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})

    def testCoalesce(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(Unset))
        # Falsy values other than Unset are kept.
        self.assertEqual(coalesce("", "fallback"), "")
        self.assertEqual(coalesce(0, 1), 0)
        self.assertIsNone(coalesce(None, "fallback"))


class ReflectiveTest(TestCase):
    """
    The metaclass mirrors private fields and derives labels and reprs.
    """

    def setUp(self):
        class SampleNode(metaclass=Reflective):
            __introspectable__ = ("name", "items", "table")
            __displayable__ = ("name",)

            def __init__(self):
                self._name = "x"
                self._items = [1, 2]
                self._table = {"a": 1}

        self.cls = SampleNode

    def testTypename(self):
        self.assertEqual(self.cls.__typename__, "sample-node")

    def testMirroredFieldsAreReadOnly(self):
        sample = self.cls()
        self.assertEqual(sample.name, "x")
        self.assertEqual(sample.items, (1, 2))
        with self.assertRaises(TypeError):
            sample.table["b"] = 2  # type: ignore[index]
        with self.assertRaises(AttributeError):
            sample.name = "y"  # type: ignore[misc]

    def testRepr(self):
        self.assertEqual(repr(self.cls()), "sample-node(name='x')")
        self.assertEqual(list(self.cls().__rich_repr__()), [("name", "x")])

    def testMirrorRejectsNonString(self):
        with self.assertRaises(TypeError):
            mirror(1)  # type: ignore[arg-type]


class DedentTest(TestCase):

    def testSingleLineUnchanged(self):
        self.assertEqual(dedent("\tA"), "\tA")
        self.assertEqual(dedent(""), "")

    def testNoIndentUnchanged(self):
        self.assertEqual(dedent("A\nB"), "A\nB")

    def testStripsDepthOfFirstIndentedLine(self):
        self.assertEqual(dedent("\n\tA\n\t\tB\n\t"), "\nA\n\tB\n")
        self.assertEqual(dedent("A\n\t\tB\n\tC\n\t\t\tD"), "A\nB\nC\n\tD")

    def testBlankLinesDoNotDecideDepth(self):
        self.assertEqual(dedent("\n\t\n\t\tA\n\t\tB"), "\n\nA\nB")

    def testRejectsNonString(self):
        with self.assertRaises(TypeError):
            dedent(None)  # type: ignore[arg-type]


class HelpersTest(TestCase):

    def testTally(self):
        self.assertEqual(tally(), 0)
        self.assertEqual(tally(True, False, "x", 0, [1]), 3)

    def testIsStdio(self):
        self.assertTrue(is_stdio(""))
        self.assertTrue(is_stdio("-"))
        self.assertFalse(is_stdio("out.txt"))

    def testWriteFileToStdout(self):
        stream = io.StringIO()
        with contextlib.redirect_stdout(stream):
            write_file("-", "hello\n")
        self.assertEqual(stream.getvalue(), "hello\n")

    def testWriteFileToPath(self):
        with tempfile.TemporaryDirectory() as directory:
            text = os.path.join(directory, "out.txt")
            write_file(text, "héllo\n")
            with open(text, encoding="utf-8") as file:
                self.assertEqual(file.read(), "héllo\n")

            binary = os.path.join(directory, "out.bin")
            write_file(binary, b"\x00\x01")
            with open(binary, "rb") as file:
                self.assertEqual(file.read(), b"\x00\x01")

    def testWriteFileRejectsOtherData(self):
        with self.assertRaises(TypeError):
            write_file("-", 1)  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
