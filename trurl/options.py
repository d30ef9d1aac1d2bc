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

"""Processing configurations and their expansion by `--iterate`."""

import dataclasses as _dc
import re as _re

from gettext import gettext

from kisstdlib.exceptions import *

from .failure import *
from .parser import Parser, ParseError
from .url import Component, escape

@_dc.dataclass
class Variant:
    """One processing pass over every input URL."""

    append_path : list[str] = _dc.field(default_factory=list)
    append_query : list[str] = _dc.field(default_factory=list)
    set_list : list[str] = _dc.field(default_factory=list)
    trim_list : list[str] = _dc.field(default_factory=list)
    redirect : str | None = None
    format : str | None = None
    json : bool = False
    verify : bool = False
    accept_space : bool = False

    # number of URLs processed by this variant so far
    urls : int = 0

    def clone(self) -> "Variant":
        """Copy with its own `set_list`, all other directive lists are shared."""
        return _dc.replace(self, set_list=list(self.set_list), urls=0)

    def add_append(self, directive : str) -> None:
        """Queue a `path=segment` or `query=pair` append, percent-encoding it."""
        lower = directive[:6].lower()
        if lower[:5] == "path=":
            self.append_path.append(escape(directive[5:]))
        elif lower == "query=":
            self.append_query.append(encode_query_pair(directive[6:]))
        else:
            raise TrurlFailure(ErrorCode.APPEND, gettext("--append unsupported component: %s"), directive)

    def add_set(self, directive : str) -> None:
        self.set_list.append(directive)

    def add_trim(self, directive : str) -> None:
        self.trim_list.append(directive)

def encode_query_pair(pair : str) -> str:
    """Percent-encode the key and the value of a `key=value` pair separately."""
    key, eq, value = pair.partition("=")
    if eq == "":
        return escape(pair)
    return escape(key) + "=" + escape(value)

set_re = _re.compile(r"([^=]*?)(:?)=")

@_dc.dataclass
class SetDirective:
    component : Component
    value : str | None
    encode : bool

def parse_set(directive : str) -> SetDirective:
    """Parse `component=value` or `component:=value`, the latter disables
       percent-encoding of the value; an empty value clears the component.
    """
    p = Parser(directive)
    try:
        name, colon = p.regex(set_re)
    except ParseError:
        raise TrurlFailure(ErrorCode.SET, gettext("invalid --set syntax: %s"), directive)
    if name == "" and colon == "":
        raise TrurlFailure(ErrorCode.SET, gettext("invalid --set syntax: %s"), directive)

    component = Component.lookup(name)
    if component is None:
        raise TrurlFailure(ErrorCode.SET, gettext("Set unknown component: %s"), directive)

    value = p.leftovers
    return SetDirective(component, value if value != "" else None, colon == "")

# `--iterate` prefixes and the components they iterate over
iterators = [
    ("hosts=", Component.host),
    ("ports=", Component.port),
    ("schemes=", Component.scheme),
]

def expand(base : Variant, directive : str) -> list[Variant]:
    """Expand `base` into one variant per space-separated value of `directive`.

       The first variant is `base` itself, the rest are its clones taken before
       any of the iterated values were added.
    """
    p = Parser(directive)
    component : Component | None = None
    for prefix, c in iterators:
        if p.opt_string(prefix):
            component = c
            break

    if component is None or p.at_eof():
        raise TrurlFailure(ErrorCode.ITER, gettext("Missing arguments for iterator %s"), directive)

    values : list[str] = []
    while True:
        value = p.take_until_string(" ")
        if value == "":
            raise TrurlFailure(ErrorCode.ITER, gettext("Missing arguments for iterator %s"), directive)
        values.append(value)
        if not p.opt_string(" "):
            break

    pristine = base.clone()
    res = [base]
    for value in values[1:]:
        variant = pristine.clone()
        variant.add_set(f"{component.value}={value}")
        res.append(variant)
    base.add_set(f"{component.value}={values[0]}")
    return res

def test_expand() -> None:
    base = Variant()
    base.add_set("path=/x")
    base.add_trim("query=utm_*")
    chain = expand(base, "hosts=a b c")
    assert len(chain) == 3
    assert chain[0] is base
    assert [v.set_list for v in chain] == [["path=/x", "host=a"], ["path=/x", "host=b"], ["path=/x", "host=c"]]
    assert all(v.trim_list is base.trim_list for v in chain)

    chain[1].add_set("port=1")
    assert chain[2].set_list == ["path=/x", "host=c"]

    chain = expand(Variant(), "schemes=https")
    assert [v.set_list for v in chain] == [["scheme=https"]]

    chain = expand(Variant(), "ports=80 8080")
    assert [v.set_list for v in chain] == [["port=80"], ["port=8080"]]

def test_expand_errors() -> None:
    for directive in ["hosts=", "users=a b", "host=a", "hosts=a  b", "hosts= a", "hosts=a ", "", "Hosts=a"]:
        try:
            expand(Variant(), directive)
        except TrurlFailure as exc:
            assert exc.code == ErrorCode.ITER, directive
        else:
            raise CatastrophicFailure("expanding %s did not fail", repr(directive))

def test_add_append() -> None:
    v = Variant()
    v.add_append("path=a b/c")
    v.add_append("Query=key w=val&ue=x")
    v.add_append("query=flag")
    assert v.append_path == ["a%20b%2Fc"]
    assert v.append_query == ["key%20w=val%26ue%3Dx", "flag"]

    try:
        v.add_append("fragment=x")
    except TrurlFailure as exc:
        assert exc.code == ErrorCode.APPEND
    else:
        raise CatastrophicFailure("appending to a fragment did not fail")

def test_parse_set() -> None:
    assert parse_set("host=example.org") == SetDirective(Component.host, "example.org", True)
    assert parse_set("HOST:=a%20b") == SetDirective(Component.host, "a%20b", False)
    assert parse_set("path=") == SetDirective(Component.path, None, True)
    assert parse_set("query=a=b") == SetDirective(Component.query, "a=b", True)

    for directive, message in [("host", "invalid --set syntax: host"),
                               ("=x", "invalid --set syntax: =x"),
                               ("bogus=1", "Set unknown component: bogus=1"),
                               (":=1", "Set unknown component: :=1")]:
        try:
            parse_set(directive)
        except TrurlFailure as exc:
            assert exc.code == ErrorCode.SET
            assert str(exc) == message, (directive, str(exc))
        else:
            raise CatastrophicFailure("parsing %s did not fail", repr(directive))
