# Copyright (c) 2024 Jan Malakhovski <oxij@oxij.org>
#
# This file is a part of `trurl` project.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""A tiny left-to-right scanner over a string, for parsing command-line
mini-languages.
"""

import re as _re
import typing as _t

from kisstdlib.exceptions import *

class ParseError(Failure, ValueError):
    pass

class Parser:
    """Cursor over a string, never backtracks."""

    def __init__(self, data : str) -> None:
        self.buffer = data
        self.pos = 0

    @property
    def leftovers(self) -> str:
        return self.buffer[self.pos:]

    def at_eof(self) -> bool:
        return self.pos >= len(self.buffer)

    def peek(self, n : int = 0) -> str:
        """Character at `pos + n`, or an empty string past the end."""
        return self.buffer[self.pos + n:self.pos + n + 1]

    def have_at_least(self, n : int) -> bool:
        return self.pos + n <= len(self.buffer)

    def ensure_have(self, n : int) -> None:
        if self.have_at_least(n):
            return
        raise ParseError("while parsing %s: expected %d more characters, got EOF", repr(self.buffer), n)

    def skip(self, n : int) -> None:
        self.ensure_have(n)
        self.pos += n

    def take(self, n : int) -> str:
        self.ensure_have(n)
        old_pos = self.pos
        new_pos = old_pos + n
        self.pos = new_pos
        return self.buffer[old_pos:new_pos]

    def at_string(self, s : str) -> bool:
        return self.buffer.startswith(s, self.pos)

    def opt_string(self, s : str) -> bool:
        if self.at_string(s):
            self.pos += len(s)
            return True
        return False

    def string(self, s : str) -> None:
        if self.opt_string(s):
            return
        raise ParseError("while parsing %s: expected %s, got %s", repr(self.buffer), repr(s), repr(self.leftovers))

    def find(self, s : str) -> int | None:
        """Position of the next `s` at or after `pos`, without moving."""
        res = self.buffer.find(s, self.pos)
        if res < 0:
            return None
        return res

    def take_until_string(self, s : str) -> str:
        """Take everything up to the next `s` or EOF, `s` itself is left unconsumed."""
        end = self.find(s)
        if end is None:
            end = len(self.buffer)
        res = self.buffer[self.pos:end]
        self.pos = end
        return res

    def regex(self, regexp : _re.Pattern[str], allow_empty : bool = False) -> tuple[str | _t.Any, ...]:
        m = regexp.match(self.buffer, self.pos)
        if m is None:
            raise ParseError("while parsing %s: expected %s, got %s", repr(self.buffer), repr(regexp), repr(self.leftovers))
        pos = m.span()[1]
        if pos == self.pos and not allow_empty:
            raise ParseError("while parsing %s: matched nothing via %s, buffer is %s", repr(self.buffer), repr(regexp), repr(self.leftovers))
        self.pos = pos
        return m.groups()

    def opt_regex(self, regexp : _re.Pattern[str]) -> tuple[str | _t.Any, ...]:
        return self.regex(regexp, True)

def test_Parser() -> None:
    p = Parser("{host}:{port}")
    assert p.opt_string("{")
    assert not p.opt_string("{")
    assert p.find("}") == 5
    assert p.take_until_string("}") == "host"
    p.string("}")
    assert p.peek() == ":"
    assert p.take(1) == ":"
    assert p.leftovers == "{port}"
    assert p.take_until_string("]") == "{port}"
    assert p.at_eof()
    assert p.peek() == ""
    assert p.find("}") is None

    try:
        p.take(1)
    except ParseError:
        pass
    else:
        raise CatastrophicFailure("`take` past EOF did not fail")

    p = Parser("port=8080")
    name, = p.regex(_re.compile(r"([a-z]+)"))
    assert name == "port"
    assert p.opt_regex(_re.compile(r"(:?)")) == ("",)
