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

"""Processing of URLs: parse, redirect, set, append, trim, print."""

import io as _io
import json as _json
import logging as _logging
import typing as _t

from gettext import gettext

from kisstdlib.exceptions import *
from kisstdlib.io import *

from .failure import *
from .format import handle_resolver, render
from .options import *
from .query import QueryPairs
from .url import *

guess_flags = URLFlag.GUESS_SCHEME | URLFlag.NON_SUPPORT_SCHEME

def parse_flags(variant : Variant) -> URLFlag:
    if variant.accept_space:
        return guess_flags | URLFlag.ALLOW_SPACE | URLFlag.URLENCODE
    return guess_flags

def apply_sets(uh : URLHandle, variant : Variant) -> None:
    seen : set[Component] = set()
    for directive in variant.set_list:
        sd = parse_set(directive)
        if sd.component in seen:
            raise TrurlFailure(ErrorCode.SET, gettext("A component can only be set once per URL (%s)"), sd.component.value)
        seen.add(sd.component)

        flags = URLFlag.NON_SUPPORT_SCHEME
        if sd.encode:
            flags |= URLFlag.URLENCODE
        try:
            uh.set(sd.component, sd.value, flags)
        except URLError as exc:
            raise TrurlFailure(ErrorCode.SET, "%s: %s", str(exc), directive)

def append_path(uh : URLHandle, segments : list[str]) -> None:
    for segment in segments:
        opath = uh.get(Component.path) or "/"
        uh.set(Component.path, opath + ("" if opath.endswith("/") else "/") + segment)

def update_query(uh : URLHandle, variant : Variant) -> None:
    qpairs = QueryPairs.extract(uh.get(Component.query))
    for pair in variant.append_query:
        qpairs.add(pair)
    for directive in variant.trim_list:
        qpairs.trim(directive)

    query = qpairs.rebuild()
    if query is None:
        return
    try:
        # an empty result clears the query
        uh.set(Component.query, query)
    except URLError as exc:
        _logging.warning(gettext("internal problem: %s"), str(exc))

def json_object(uh : URLHandle) -> str:
    lines = []
    for component in components:
        flags = URLFlag.URLDECODE
        if component is not Component.url:
            flags |= URLFlag.DEFAULT_PORT
        try:
            value = uh.get(component, flags)
        except URLError:
            continue
        if value is None:
            continue
        lines.append(f'    "{component.value}": {_json.dumps(value, ensure_ascii=False)}')
    return "  {\n" + ",\n".join(lines) + "\n  }"

class URLProcessor:
    """Runs every configured variant over every input URL and writes the results to `fobj`."""

    def __init__(self, fobj : TIOWrappedWriter, json : bool = False) -> None:
        self.fobj = fobj
        self.json = json
        # `JSON` objects written so far, over all variants
        self.objects = 0

    def write(self, data : str) -> None:
        """Write `data` as `UTF-8`, turning surrogate escapes back into raw bytes."""
        self.fobj.write_bytes(data.encode("utf-8", "surrogateescape"))

    def begin(self) -> None:
        if self.json:
            self.write("[\n")

    def end(self) -> None:
        if self.json:
            self.write("\n]\n")
        self.fobj.flush()

    def load(self, uh : URLHandle, variant : Variant, url : str, flags : URLFlag) -> bool:
        try:
            uh.set(Component.url, url, flags)
        except URLError as exc:
            if variant.verify:
                raise TrurlFailure(ErrorCode.BADURL, "%s [%s]", str(exc), url)
            _logging.warning("%s [%s]", str(exc), url)
            return False
        return True

    def process(self, variant : Variant, url : str | None) -> bool:
        """Process a single URL, `None` meaning "build it from `--set`s only".
           Returns `False` when the URL was skipped.
        """
        uh = URLHandle()
        if url is not None:
            if not self.load(uh, variant, url, parse_flags(variant)):
                return False
            if variant.redirect is not None and \
               not self.load(uh, variant, variant.redirect, guess_flags):
                return False

        apply_sets(uh, variant)
        append_path(uh, variant.append_path)
        update_query(uh, variant)

        if self.json:
            self.write((",\n" if self.objects > 0 else "") + json_object(uh))
            self.objects += 1
        elif variant.format is not None:
            self.write(render(variant.format, handle_resolver(uh)))
        else:
            try:
                nurl = uh.get(Component.url, URLFlag.NO_DEFAULT_PORT)
            except URLError:
                raise TrurlFailure(ErrorCode.URL, gettext("not enough input for a URL"))
            self.write(nurl + "\n")

        variant.urls += 1
        return True

    def process_all(self, chain : list[Variant], urls : _t.Iterable[str | None]) -> None:
        """For each URL, in order, run it through every variant of the `chain`, in order."""
        self.begin()
        for url in urls:
            for variant in chain:
                self.process(variant, url)
        self.end()

def run_bytes(chain : list[Variant], urls : list[str | None]) -> bytes:
    with TIOWrappedWriter(_io.BytesIO()) as f:
        URLProcessor(f, chain[0].json).process_all(chain, urls)
        data : bytes = f.fobj.getvalue()
    return data

def run(chain : list[Variant], urls : list[str | None]) -> str:
    return run_bytes(chain, urls).decode("utf-8")

def test_process_default() -> None:
    def check(variant : Variant, urls : list[str | None], expected : str) -> None:
        got = run([variant], urls)
        if got != expected:
            raise CatastrophicFailure("while processing %s, got %s, expected %s", urls, repr(got), repr(expected))

    check(Variant(), ["example.org", "https://example.org:443/a/../b"],
          "http://example.org/\nhttps://example.org/b\n")

    v = Variant()
    v.add_set("host=example.net")
    v.add_set("port:=8080")
    check(v, ["http://example.org/x"], "http://example.net:8080/x\n")

    v = Variant()
    v.add_set("scheme=ftp")
    v.add_set("host=example.org")
    check(v, [None], "ftp://example.org/\n")

    v = Variant()
    v.add_set("path=")
    check(v, ["http://example.org/some/path?q=1"], "http://example.org/?q=1\n")

    v = Variant()
    v.add_set("path=a b")
    v.add_set("fragment:=x%20y")
    check(v, ["http://example.org/"], "http://example.org/a%20b#x%20y\n")

    v = Variant()
    v.add_append("path=new seg")
    v.add_append("path=last")
    check(v, ["http://example.org/dir/", "http://example.org/file"],
          "http://example.org/dir/new%20seg/last\nhttp://example.org/file/new%20seg/last\n")

    v = Variant()
    v.add_append("query=name=John Doe")
    v.add_append("query=flag")
    check(v, ["http://example.org/?a=1", "http://example.org/"],
          "http://example.org/?a=1&name=John%20Doe&flag\nhttp://example.org/?name=John%20Doe&flag\n")

    v = Variant()
    v.add_trim("query=utm_*")
    v.add_trim("query=fbclid")
    check(v, ["http://example.org/?utm_source=x&id=1&UTM_MEDIUM=y&fbclid=z", "http://example.org/?utm_source=x"],
          "http://example.org/?id=1\nhttp://example.org/\n")

    v = Variant()
    v.redirect = "../other?x=1"
    check(v, ["http://example.org/a/b/c"], "http://example.org/a/other?x=1\n")

    v = Variant()
    v.accept_space = True
    check(v, ["http://example.org/a b"], "http://example.org/a%20b\n")

def test_process_skip() -> None:
    assert run([Variant()], ["http://example.org:99999/", "http://ex ample.org/", "example.org"]) == "http://example.org/\n"

    v = Variant()
    v.verify = True
    try:
        run([v], ["example.org", "http://ex ample.org/"])
    except TrurlFailure as exc:
        assert exc.code == ErrorCode.BADURL
        assert str(exc) == "Malformed input to a URL function [http://ex ample.org/]"
    else:
        raise CatastrophicFailure("`--verify` did not fail")

def test_process_failures() -> None:
    def check(variant : Variant, urls : list[str | None], code : ErrorCode) -> None:
        try:
            run([variant], urls)
        except TrurlFailure as exc:
            if exc.code != code:
                raise CatastrophicFailure("while processing %s, got exit code %d, expected %d", urls, exc.code, code)
        else:
            raise CatastrophicFailure("processing %s did not fail", urls)

    check(Variant(), [None], ErrorCode.URL)

    v = Variant()
    v.add_set("host=example.org")
    check(v, [None], ErrorCode.URL)

    v = Variant()
    v.add_set("host=a.example.org")
    v.add_set("HOST=b.example.org")
    check(v, ["http://example.org/"], ErrorCode.SET)

    v = Variant()
    v.add_set("port=http")
    check(v, ["http://example.org/"], ErrorCode.SET)

    v = Variant()
    v.add_set("nope=1")
    check(v, ["http://example.org/"], ErrorCode.SET)

    v = Variant()
    v.add_trim("path=x")
    check(v, ["http://example.org/"], ErrorCode.TRIM)

def test_process_iterate() -> None:
    base = Variant()
    base.format = "{host}"
    chain = expand(base, "hosts=a b c")
    assert run(chain, ["https://example.com/x"]) == "a\nb\nc\n"
    assert [v.urls for v in chain] == [1, 1, 1]

    base = Variant()
    base.add_set("path=/p")
    chain = expand(base, "schemes=http ftp")
    assert run(chain, ["example.org", "example.net"]) == \
        "http://example.org/p\nftp://example.org/p\nhttp://example.net/p\nftp://example.net/p\n"

    base = Variant()
    base.add_set("host=example.org")
    chain = expand(base, "hosts=a b")
    try:
        run(chain, ["http://example.com/"])
    except TrurlFailure as exc:
        assert exc.code == ErrorCode.SET
    else:
        raise CatastrophicFailure("setting `host` twice did not fail")

def test_process_get() -> None:
    v = Variant()
    v.format = "{{id}}"
    assert run([v], ["http://example.org/"]) == "{id}}\n"

    v.format = "{bogus}"
    assert run([v], ["http://example.org/"]) == "\n"

    v.format = "{scheme} {port} {query}"
    v.add_trim("query=*")
    assert run([v], ["https://example.org/?a=1&b=2"]) == "https 443 \n"

    # undecodable bytes are printed raw
    v = Variant()
    v.format = "{path}|{:path}|{query}"
    assert run_bytes([v], ["http://example.org/%ff%C3%A9?q=%fe+x"]) == b"/\xff\xc3\xa9|/%ff%C3%A9|q=\xfe x\n"

def test_process_json() -> None:
    v = Variant()
    v.json = True
    got = run([v], ["https://user@example.org/p%20q?a=1#f", "http://ex ample.org/", "ftp://example.org:2121/"])
    expected = """[
  {
    "url": "https://user@example.org/p%20q?a=1#f",
    "scheme": "https",
    "user": "user",
    "host": "example.org",
    "port": "443",
    "path": "/p q",
    "query": "a=1",
    "fragment": "f"
  },
  {
    "url": "ftp://example.org:2121/",
    "scheme": "ftp",
    "host": "example.org",
    "port": "2121",
    "path": "/"
  }
]
"""
    if got != expected:
        raise CatastrophicFailure("got %s, expected %s", repr(got), repr(expected))

    parsed = _json.loads(got)
    assert [x["host"] for x in parsed] == ["example.org", "example.org"]

    base = Variant()
    base.json = True
    chain = expand(base, "ports=1 2")
    parsed = _json.loads(run(chain, ["http://example.org/", "http://example.net/"]))
    assert [(x["host"], x["port"]) for x in parsed] == \
        [("example.org", "1"), ("example.org", "2"), ("example.net", "1"), ("example.net", "2")]

    assert run([base], []) == "[\n\n]\n"

def test_process_capacity(caplog : _t.Any) -> None:
    v = Variant()
    query = "&".join([f"k{i}=v" for i in range(1003)])
    with caplog.at_level(_logging.WARNING):
        got = run([v], [f"http://example.org/?{query}"])
    assert caplog.messages.count("too many query pairs") == 3
    assert got == "http://example.org/?" + "&".join([f"k{i}=v" for i in range(1000)]) + "\n"
