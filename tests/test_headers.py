#!/usr/bin/env python3
"""
Test suite for the ordered, case-insensitive header table
"""
import unittest

from httpwire.core.body import FixedBody, StreamingBody
from httpwire.core.headers import Headers
from httpwire.core.message import Version
from httpwire.core.uri import URI


async def _noop_producer(sender):
    pass


class HeadersTests(unittest.TestCase):
    def test_lookup_is_case_insensitive(self):
        headers = Headers()
        headers.set("Content-Type", "text/plain")
        self.assertEqual(headers.get("content-type"), "text/plain")
        self.assertEqual(headers["CONTENT-TYPE"], "text/plain")
        self.assertIn("content-TYPE", headers)
        # First spelling is kept
        self.assertEqual(list(headers), ["Content-Type"])

    def test_set_overwrites(self):
        headers = Headers([("Accept", "a"), ("Accept", "b")])
        headers.set("accept", "c")
        self.assertEqual(headers.get_list("Accept"), ["c"])
        self.assertEqual(list(headers.fields()), [("Accept", "c")])

    def test_add_keeps_repeated_lines(self):
        headers = Headers()
        headers.add("Accept", "text/html")
        headers.add("accept", "application/json")
        self.assertEqual(headers["Accept"], "text/html, application/json")
        self.assertEqual(headers.get_list("ACCEPT"), ["text/html", "application/json"])
        self.assertEqual(len(headers), 1)

    def test_fields_keep_insertion_order(self):
        headers = Headers([("B", "1"), ("A", "2"), ("b", "3")])
        self.assertEqual(list(headers.fields()), [("B", "1"), ("B", "3"), ("A", "2")])
        self.assertEqual(list(headers.items()), [("B", "1, 3"), ("A", "2")])

    def test_append_to_last_concatenates(self):
        headers = Headers()
        headers.add("X-First", "one")
        headers.add("X-Long", "first")
        headers.append_to_last("second")
        self.assertEqual(headers["X-Long"], "firstsecond")
        self.assertEqual(headers["X-First"], "one")
        self.assertEqual(headers.last_field, "X-Long")

    def test_append_to_last_without_field(self):
        with self.assertRaises(KeyError):
            Headers().append_to_last("value")

    def test_missing_field(self):
        headers = Headers()
        self.assertIsNone(headers.get("Host"))
        self.assertEqual(headers.get("Host", "default"), "default")
        self.assertEqual(headers.get_list("Host"), [])
        with self.assertRaises(KeyError):
            headers["Host"]
        with self.assertRaises(KeyError):
            del headers["Host"]

    def test_pop_and_delete(self):
        headers = Headers([("A", "1"), ("B", "2")])
        self.assertEqual(headers.pop("a"), "1")
        self.assertIsNone(headers.pop("a"))
        del headers["b"]
        self.assertEqual(len(headers), 0)

    def test_copy_is_independent(self):
        headers = Headers([("Accept", "a")])
        clone = headers.copy()
        clone.add("Accept", "b")
        clone.set("Host", "example.com")
        self.assertEqual(headers.get_list("Accept"), ["a"])
        self.assertNotIn("Host", headers)
        self.assertEqual(clone.copy(), clone)

    def test_append_host_only_when_absent(self):
        headers = Headers()
        headers.append_host(URI(host="example.com", port=8080))
        self.assertEqual(headers["Host"], "example.com:8080")

        headers = Headers([("host", "kept.example")])
        headers.append_host(URI(host="example.com"))
        self.assertEqual(headers["Host"], "kept.example")

    def test_append_host_omits_default_port(self):
        headers = Headers()
        headers.append_host(URI(scheme="https", host="example.com", port=443))
        self.assertEqual(headers["Host"], "example.com")

    def test_append_metadata_fixed_body(self):
        headers = Headers([("Transfer-Encoding", "chunked")])
        headers.append_metadata(FixedBody(b"hello"))
        self.assertEqual(headers["Content-Length"], "5")
        self.assertNotIn("Transfer-Encoding", headers)

    def test_append_metadata_streaming_body(self):
        headers = Headers([("Content-Length", "10")])
        headers.append_metadata(StreamingBody(_noop_producer))
        self.assertEqual(headers["Transfer-Encoding"], "chunked")
        self.assertNotIn("Content-Length", headers)

    def test_ensure_connection(self):
        headers = Headers()
        headers.ensure_connection(Version(1, 1))
        self.assertEqual(headers["Connection"], "keep-alive")

        headers = Headers()
        headers.ensure_connection(Version(1, 0))
        self.assertEqual(headers["Connection"], "close")

        headers = Headers([("Connection", "Upgrade")])
        headers.ensure_connection(Version(1, 1))
        self.assertEqual(headers["Connection"], "Upgrade")


if __name__ == '__main__':
    unittest.main()
