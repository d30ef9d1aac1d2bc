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

"""The `--get` template language.

- `{component}` substitutes the (percent-decoded) value of a URL component,
  `{:component}` substitutes it as-is; component names are case-insensitive,
  unknown ones substitute nothing;
- `{{` produces a literal `{`;
- `\\r`, `\\n`, `\\t` produce the corresponding control characters, other
  backslash sequences are left as-is;
- a `{` without a closing `}` ends the output.
"""

import dataclasses as _dc
import logging as _logging
import typing as _t

from .parser import Parser
from .url import *

@_dc.dataclass
class Literal:
    text : str

@_dc.dataclass
class Escape:
    text : str

@_dc.dataclass
class Reference:
    name : str
    component : Component | None
    decode : bool = True

Token = Literal | Escape | Reference

escapes = {
    "r": "\r",
    "n": "\n",
    "t": "\t",
}

def tokenize(fmt : str) -> _t.Iterator[Token]:
    p = Parser(fmt)
    while not p.at_eof():
        if p.opt_string("{{"):
            yield Literal("{")
        elif p.at_string("{"):
            end = p.find("}")
            if end is None:
                # unterminated reference, nothing after it is produced
                return
            p.skip(1)
            decode = not p.opt_string(":")
            name = p.take_until_string("}")
            p.skip(1)
            yield Reference(name, Component.lookup(name), decode)
        elif p.at_string("\\") and p.have_at_least(2):
            seq = p.take(2)
            yield Escape(escapes.get(seq[1], seq))
        else:
            yield Literal(p.take(1))

Resolver = _t.Callable[[Component, bool], str | None]

def render(fmt : str, resolve : Resolver) -> str:
    """Render `fmt`, using `resolve(component, decode)` to get component values."""
    res = []
    for token in tokenize(fmt):
        if isinstance(token, Reference):
            if token.component is None:
                continue
            try:
                value = resolve(token.component, token.decode)
            except URLError as exc:
                _logging.error("%s (%s)", str(exc), token.component.value)
                continue
            if value is not None:
                res.append(value)
        else:
            res.append(token.text)
    res.append("\n")
    return "".join(res)

def handle_resolver(uh : URLHandle) -> Resolver:
    def resolve(component : Component, decode : bool) -> str | None:
        flags = URLFlag.DEFAULT_PORT | URLFlag.NO_DEFAULT_PORT
        if decode:
            flags |= URLFlag.URLDECODE
        return uh.get(component, flags)
    return resolve

def test_render() -> None:
    uh = parse_url("https://user@example.org:8080/a%20b?q=1#frag", URLFlag.GUESS_SCHEME)
    resolve = handle_resolver(uh)

    def check(fmt : str, expected : str) -> None:
        got = render(fmt, resolve)
        if got != expected:
            raise CatastrophicFailure("while rendering %s, got %s, expected %s", repr(fmt), repr(got), repr(expected))

    check("", "\n")
    check("{host}", "example.org\n")
    check("{HOST}:{Port}", "example.org:8080\n")
    check("{path}", "/a b\n")
    check("{:path}", "/a%20b\n")
    check("{user} {password}|", "user |\n")
    check("{{id}}", "{id}}\n")
    check("{{{host}", "{example.org\n")
    check("{bogus}", "\n")
    check("{}", "\n")
    check("x{host", "x\n")
    check("{scheme}://{host}{path", "https://example.org\n")
    check("a\\tb\\nc\\rd", "a\tb\nc\rd\n")
    check("\\x\\\\", "\\x\\\\\n")
    check("end\\", "end\\\n")
    check("{url}", "https://user@example.org:8080/a%20b?q=1#frag\n")

    uh = parse_url("http://example.org/", URLFlag.GUESS_SCHEME)
    assert render("{port} {query}.", handle_resolver(uh)) == "80 .\n"

def test_render_errors() -> None:
    uh = URLHandle(host="example.org")
    assert render("[{url}] {host}", handle_resolver(uh)) == "[] example.org\n"

def test_tokenize() -> None:
    assert list(tokenize("{{a}\\n{:Query}")) == [
        Literal("{"),
        Literal("a"),
        Literal("}"),
        Escape("\n"),
        Reference("Query", Component.query, False),
    ]
