# Copyright (c) 2023-2024 Jan Malakhovski <oxij@oxij.org>
#
# This file is a part of `trurl` project.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <http://www.gnu.org/licenses/>.

"""Query strings as ordered sequences of `name=value` pairs."""

import logging as _logging
import typing as _t

from gettext import gettext

from kisstdlib.exceptions import *

from .failure import *

MAX_QPAIRS = 1000

class QueryPairs:
    """An ordered sequence of raw query pairs.

       Removed pairs are replaced with empty strings instead of being deleted,
       so positions stay stable between `trim` passes. At most `MAX_QPAIRS`
       pairs are kept, the rest are dropped with a warning.
    """

    def __init__(self) -> None:
        self.pairs : list[str] = []

    def __len__(self) -> int:
        return len(self.pairs)

    def __getitem__(self, i : int) -> str:
        return self.pairs[i]

    def __iter__(self) -> _t.Iterator[str]:
        return iter(self.pairs)

    def add(self, pair : str) -> bool:
        if len(self.pairs) >= MAX_QPAIRS:
            _logging.warning(gettext("too many query pairs"))
            return False
        self.pairs.append(pair)
        return True

    @classmethod
    def extract(cls, query : str | None) -> "QueryPairs":
        """Split a query on `&`, keeping empty pieces as-is."""
        res = cls()
        if query is None or query == "":
            return res
        for pair in query.split("&"):
            res.add(pair)
        return res

    def tombstone(self, i : int) -> None:
        self.pairs[i] = ""

    def is_removed(self, i : int) -> bool:
        return self.pairs[i] == ""

    def trim(self, directive : str) -> None:
        """Apply a `query=pattern` directive, where `pattern` is a case-insensitive
           key name, or a key prefix when it ends with `*`.
        """
        if directive[:5].lower() != "query":
            raise TrurlFailure(ErrorCode.TRIM, gettext("Unsupported trim component: %s"), directive)

        _, eq, pattern = directive.partition("=")
        if eq == "":
            raise TrurlFailure(ErrorCode.TRIM, gettext("invalid --trim syntax: %s"), directive)

        prefix = pattern.endswith("*")
        if prefix:
            pattern = pattern[:-1]
        pattern = pattern.lower()

        for i in range(len(self)):
            if self.is_removed(i):
                continue
            key = self[i].partition("=")[0].lower()
            if prefix and key.startswith(pattern) or \
               not prefix and key == pattern:
                self.tombstone(i)

    def rebuild(self) -> str | None:
        """Join the pairs back, skipping removed ones; `None` if nothing was ever stored."""
        if len(self.pairs) == 0:
            return None
        return "&".join([self[i] for i in range(len(self)) if not self.is_removed(i)])

def test_QueryPairs_roundtrip() -> None:
    for query in ["a=1", "a=1&b=2&c", "a=&b=2", "utm_source=x&id=3&UTM_medium=y", "k=v=w&k=v"]:
        got = QueryPairs.extract(query).rebuild()
        if got != query:
            raise CatastrophicFailure("while rebuilding %s, got %s", query, got)

    assert QueryPairs.extract(None).rebuild() is None
    assert QueryPairs.extract("").rebuild() is None

    q = QueryPairs.extract("a=1&&b=2&")
    assert list(q) == ["a=1", "", "b=2", ""]
    assert q.rebuild() == "a=1&b=2"

def test_QueryPairs_trim() -> None:
    def check(query : str, directives : list[str], expected : str | None) -> None:
        q = QueryPairs.extract(query)
        for d in directives:
            q.trim(d)
        got = q.rebuild()
        if got != expected:
            raise CatastrophicFailure("while trimming %s with %s, got %s, expected %s", query, directives, repr(got), repr(expected))

    query = "utm_source=a&id=1&UTM_Medium=b&utm=c&utm_source"
    check(query, ["query=utm_*"], "id=1&utm=c")
    check(query, ["query=utm_source"], "id=1&UTM_Medium=b&utm=c")
    check(query, ["query=UTM_SOURCE"], "id=1&UTM_Medium=b&utm=c")
    check(query, ["query=utm*"], "id=1")
    check(query, ["query=utm_*", "query=utm_*"], "id=1&utm=c")
    check(query, ["query=id", "query=utm_*"], "utm=c")
    check(query, ["query=*"], "")
    check(query, ["query=nothing"], query)
    check("a=1&b=2", ["QUERY=a"], "b=2")

    # positions are kept
    q = QueryPairs.extract("a=1&b=2&c=3")
    q.trim("query=b")
    assert len(q) == 3
    assert q.is_removed(1)
    assert q[2] == "c=3"

def test_QueryPairs_trim_errors() -> None:
    for directive in ["path=x", "fragment=*"]:
        try:
            QueryPairs.extract("a=1").trim(directive)
        except TrurlFailure as exc:
            assert exc.code == ErrorCode.TRIM
            assert str(exc) == f"Unsupported trim component: {directive}"
        else:
            raise CatastrophicFailure("trimming with %s did not fail", directive)

    try:
        QueryPairs.extract("a=1").trim("query")
    except TrurlFailure as exc:
        assert exc.code == ErrorCode.TRIM
    else:
        raise CatastrophicFailure("trimming without a pattern did not fail")

def test_QueryPairs_capacity(caplog : _t.Any) -> None:
    query = "&".join([f"k{i}=v" for i in range(MAX_QPAIRS + 5)])
    with caplog.at_level(_logging.WARNING):
        q = QueryPairs.extract(query)
        assert len(q) == MAX_QPAIRS
        assert not q.add("extra=1")
    assert caplog.messages == ["too many query pairs"] * 6
    assert q.rebuild() == "&".join([f"k{i}=v" for i in range(MAX_QPAIRS)])
