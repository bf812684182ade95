"""
Ordered, case-insensitive HTTP header table.

Field lines are kept as they arrive: a repeated field name becomes an extra
value of the same field rather than overwriting it, so that lookups can return
the RFC 7230 combined value while serialization can still emit one line per
value (needed for ``Set-Cookie``).
"""

"""
Copyright 2025 Chris Bunting
File: headers.py | Purpose: Header table used by the HTTP parser and serializer
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-03 - Chris Bunting: Keep repeated field lines as separate values
2025-09-02 - Chris Bunting: Initial implementation
"""

from typing import Dict, Iterator, List, Optional, Tuple

from .body import FixedBody


class Headers:
    """Insertion-ordered mapping from field name to value.

    Names compare case-insensitively but keep the spelling of their first
    occurrence. ``headers["Accept"]`` returns every value joined with ``", "``.
    """

    def __init__(self, fields: Optional[List[Tuple[str, str]]] = None):
        # lowercased name -> (display name, values)
        self._fields: Dict[str, Tuple[str, List[str]]] = {}
        self._last: Optional[str] = None
        for name, value in fields or []:
            self.add(name, value)

    def set(self, name: str, value: str) -> None:
        """Store ``value`` as the only value of ``name``."""
        key = name.lower()
        if key in self._fields:
            display = self._fields[key][0]
            self._fields[key] = (display, [value])
        else:
            self._fields[key] = (name, [value])
        self._last = key

    def add(self, name: str, value: str) -> None:
        """Store ``value`` as an additional field line for ``name``."""
        key = name.lower()
        if key in self._fields:
            self._fields[key][1].append(value)
        else:
            self._fields[key] = (name, [value])
        self._last = key

    def append_to_last(self, value: str) -> None:
        """Concatenate an obs-fold continuation onto the last stored value.

        Raises:
            KeyError: If no field has been stored yet
        """
        if self._last is None or self._last not in self._fields:
            raise KeyError("No header field to continue")
        values = self._fields[self._last][1]
        values[-1] = values[-1] + value

    @property
    def last_field(self) -> Optional[str]:
        if self._last is None or self._last not in self._fields:
            return None
        return self._fields[self._last][0]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        entry = self._fields.get(name.lower())
        if entry is None:
            return default
        return ", ".join(entry[1])

    def get_list(self, name: str) -> List[str]:
        """Return each stored value of ``name`` separately."""
        entry = self._fields.get(name.lower())
        return list(entry[1]) if entry else []

    def pop(self, name: str, default=None):
        entry = self._fields.pop(name.lower(), None)
        if entry is None:
            return default
        return ", ".join(entry[1])

    def fields(self) -> Iterator[Tuple[str, str]]:
        """Yield one ``(name, value)`` pair per stored field line."""
        for display, values in self._fields.values():
            for value in values:
                yield display, value

    def items(self) -> Iterator[Tuple[str, str]]:
        for key in self._fields:
            display, _ = self._fields[key]
            yield display, self.get(key)

    def copy(self) -> "Headers":
        clone = Headers()
        for key, (display, values) in self._fields.items():
            clone._fields[key] = (display, list(values))
        clone._last = self._last
        return clone

    # Serializer helpers. These are only ever applied to a copy.

    def append_host(self, uri) -> None:
        """Add ``Host`` from the request URI when the caller did not set one."""
        if "host" in self or not uri.host:
            return
        self.set("Host", uri.authority)

    def append_metadata(self, body) -> None:
        """Describe ``body`` with ``Content-Length`` or chunked framing."""
        if isinstance(body, FixedBody):
            self.pop("Transfer-Encoding")
            self.set("Content-Length", str(len(body.data)))
        else:
            self.pop("Content-Length")
            self.set("Transfer-Encoding", "chunked")

    def ensure_connection(self, version) -> None:
        if "connection" in self:
            return
        if (version.major, version.minor) >= (1, 1):
            self.set("Connection", "keep-alive")
        else:
            self.set("Connection", "close")

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        if self.pop(name) is None:
            raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._fields

    def __iter__(self) -> Iterator[str]:
        return (display for display, _ in self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return [(k, v[1]) for k, v in self._fields.items()] == [
            (k, v[1]) for k, v in other._fields.items()
        ]

    def __repr__(self) -> str:
        return f"Headers({list(self.fields())!r})"
