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

"""`trurl` command-line driver."""

import io as _io
import logging as _logging
import os as _os
import sys as _sys
import tempfile as _tempfile
import typing as _t

from gettext import gettext

from kisstdlib import argparse
from kisstdlib.exceptions import *
from kisstdlib.io import *
from kisstdlib.io.stdio import *

from .failure import *
from .options import *
from .pipeline import URLProcessor
from .url import components

__prog__ = "trurl"

try:
    import importlib.metadata as _meta
    version = _meta.version(__package__)
except Exception:
    version = "dev"

def issue(pattern : str, *args : _t.Any) -> None:
    message = pattern % args
    if stderr.isatty:
        stderr.write_str_ln("\033[31m" + message + "\033[0m")
    else:
        stderr.write_str_ln(message)
    stderr.flush()

def error(pattern : str, *args : _t.Any) -> None:
    issue(__prog__ + " " + gettext("error") + ": " + pattern, *args)

def die(code : int, pattern : str, *args : _t.Any) -> _t.NoReturn:
    error(pattern, *args)
    error(gettext("Try %s -h for help"), __prog__)
    _sys.exit(code)

class VariantAction(argparse.Action):
    """Accumulates directives into the `Variant` stored at `dest`."""

    def variant(self, cfg : argparse.Namespace) -> Variant:
        variant : Variant | None = getattr(cfg, self.dest, None)
        if variant is None:
            variant = Variant()
            setattr(cfg, self.dest, variant)
        return variant

class AddAppend(VariantAction):
    def __call__(self, parser : _t.Any, cfg : argparse.Namespace, value : _t.Any, option_string : _t.Optional[str] = None) -> None:
        self.variant(cfg).add_append(value)

class AddSet(VariantAction):
    def __call__(self, parser : _t.Any, cfg : argparse.Namespace, value : _t.Any, option_string : _t.Optional[str] = None) -> None:
        self.variant(cfg).add_set(value)

class AddTrim(VariantAction):
    def __call__(self, parser : _t.Any, cfg : argparse.Namespace, value : _t.Any, option_string : _t.Optional[str] = None) -> None:
        self.variant(cfg).add_trim(value)

class StoreOnce(argparse.Action):
    """Like `store`, but giving the option twice is a failure with `const` exit code."""

    def __call__(self, parser : _t.Any, cfg : argparse.Namespace, value : _t.Any, option_string : _t.Optional[str] = None) -> None:
        if getattr(cfg, self.dest) is not None:
            raise TrurlFailure(self.const, gettext("only one %s is supported"), option_string)
        setattr(cfg, self.dest, value)

def add_doc(fmt : argparse.BetterHelpFormatter) -> None:
    _ : _t.Callable[[str], str] = gettext

    fmt.add_text(_("# Examples"))

    fmt.start_section(_("Normalize a URL"))
    fmt.add_code(f"{__prog__} example.org/./a/../b")
    fmt.end_section()

    fmt.start_section(_("Replace the host name and print the result as `JSON`"))
    fmt.add_code(f"{__prog__} --set host=example.net --json https://example.org/path")
    fmt.end_section()

    fmt.start_section(_("Extract the host and the port of each URL listed in a file, one per line"))
    fmt.add_code(f'{__prog__} --url-file urls.txt --get "{{host}}:{{port}}"')
    fmt.end_section()

    fmt.start_section(_("Drop tracking parameters from a query"))
    fmt.add_code(f'{__prog__} --trim "query=utm_*" "https://example.org/?utm_source=x&id=1"')
    fmt.end_section()

    fmt.start_section(_("Produce a URL for every combination of the given schemes"))
    fmt.add_code(f'{__prog__} --iterate "schemes=http https" example.org/a')
    fmt.end_section()

    fmt.start_section(_("Resolve a relative reference"))
    fmt.add_code(f"{__prog__} --redirect ../other https://example.org/a/b/c")
    fmt.end_section()

class ArgumentParser(argparse.BetterArgumentParser):
    def error(self, message : str) -> _t.NoReturn:
        self.print_usage(_sys.stderr)
        if "expected one argument" in message:
            die(ErrorCode.ARG, "%s", message)
        die(ErrorCode.FLAG, "%s", message)

def make_argparser() -> ArgumentParser:
    _ : _t.Callable[[str], str] = gettext

    parser = ArgumentParser(
        prog=__prog__,
        description=_("Parse, manipulate, and print URLs.") + "\n\n" +
_("URL components: ") + ", ".join([c.value for c in components]) + ".",
        additional_sections = [add_doc],
        allow_abbrev = False,
        add_version = False,
        add_help = False)
    parser.add_argument("-h", "--help", action="store_true", help=_("show this help message and exit"))
    parser.add_argument("-v", "--version", action="version", version=f"{__prog__} version {version}", help=_("show program's version number and exit"))

    grp = parser.add_argument_group("input")
    grp.add_argument("--url", metavar="URL", dest="url_opts", action="append", default=[], help=_("a URL to work with, same as giving it as a positional argument"))
    grp.add_argument("-f", "--url-file", metavar="FILE", action=StoreOnce, const=ErrorCode.FLAG, default=None,
                     help=_("read URLs to work with from this file, one per line, `-` reads from stdin; when given, other input URLs are ignored"))
    grp.add_argument("--accept-space", action="store_true", help=_("percent-encode spaces in input URLs instead of treating them as malformed"))
    grp.add_argument("--verify", action="store_true", help=_("exit with an error on the first malformed input URL instead of skipping it with a note"))

    grp = parser.add_argument_group("modification")
    grp.add_argument("--redirect", metavar="URL", action=StoreOnce, const=ErrorCode.FLAG, default=None,
                     help=_("resolve this URL, which may be relative, against each input URL"))
    grp.add_argument("-s", "--set", metavar="COMPONENT[:]=DATA", dest="variant", action=AddSet, default=None,
                     help=_("set a URL component, the data gets percent-encoded unless `:=` is used, empty data clears the component; each component can only be set once"))
    grp.add_argument("-a", "--append", metavar="COMPONENT=DATA", dest="variant", action=AddAppend, default=None,
                     help=_("append a percent-encoded segment to the `path` or a percent-encoded pair to the `query`"))
    grp.add_argument("--trim", metavar="COMPONENT=WHAT", dest="variant", action=AddTrim, default=None,
                     help=_("remove the `query` pairs whose names match `WHAT`, case-insensitively; a trailing `*` matches any suffix"))
    grp.add_argument("--iterate", metavar="COMPONENT=VALUES", action=StoreOnce, const=ErrorCode.ITER, default=None,
                     help=_("process each URL once for every space-separated value given here; `COMPONENT` is one of `hosts`, `ports`, `schemes`"))

    grp = parser.add_argument_group("output")
    grp.add_argument("-g", "--get", metavar="FORMAT", dest="format", action=StoreOnce, const=ErrorCode.FLAG, default=None,
                     help=_("print each URL using this template, where `{component}` substitutes a decoded component, `{:component}` substitutes it as-is, `{{` is a literal `{`, and `\\n`, `\\r`, `\\t` are the usual control characters"))
    grp.add_argument("--json", action="store_true", help=_("print all URLs as a `JSON` array of objects mapping component names to their values"))

    parser.add_argument("urls", metavar="URL", nargs="*", default=[], help=_("URLs to work with"))

    return parser

def make_chain(cargs : argparse.Namespace) -> list[Variant]:
    """Build the chain of variants described by the command line."""
    variant : Variant = cargs.variant if cargs.variant is not None else Variant()
    variant.redirect = cargs.redirect
    variant.format = cargs.format
    variant.json = cargs.json
    variant.verify = cargs.verify
    variant.accept_space = cargs.accept_space
    if cargs.iterate is not None:
        return expand(variant, cargs.iterate)
    return [variant]

def open_url_file(path : str) -> _t.BinaryIO:
    if path == "-":
        return _sys.stdin.buffer
    try:
        return open(path, "rb")
    except OSError:
        raise TrurlFailure(ErrorCode.FILE, gettext("--url-file %s not found"), path)

def url_lines(fobj : _t.BinaryIO, verify : bool = False) -> _t.Iterator[str]:
    """Non-empty lines of `fobj`; lines that are not valid `UTF-8` are
       skipped with a warning, or fail with `BADURL` when `verify` is set.
    """
    for bline in fobj:
        if bline.endswith(b"\n"):
            bline = bline[:-1]
        if bline.endswith(b"\r"):
            bline = bline[:-1]
        if bline == b"":
            continue
        try:
            line = bline.decode("utf-8")
        except UnicodeDecodeError:
            if verify:
                raise TrurlFailure(ErrorCode.BADURL, gettext("invalid UTF-8 in input [%s]"), repr(bline))
            _logging.warning(gettext("invalid UTF-8 in input [%s]"), repr(bline))
            continue
        yield line

def cmd_process(cargs : argparse.Namespace, out : TIOWrappedWriter) -> None:
    chain = make_chain(cargs)
    processor = URLProcessor(out, cargs.json)

    if cargs.url_file is None:
        processor.process_all(chain, (cargs.urls + cargs.url_opts) or [None])
        return

    fobj = open_url_file(cargs.url_file)
    try:
        processor.process_all(chain, url_lines(fobj, cargs.verify))
    finally:
        if fobj is not _sys.stdin.buffer:
            fobj.close()

def main() -> None:
    _ : _t.Callable[[str], str] = gettext

    parser = make_argparser()

    try:
        cargs = parser.parse_intermixed_args(_sys.argv[1:])
    except TrurlFailure as exc:
        die(exc.code, "%s", str(exc))

    if cargs.help:
        print(parser.format_help())
        _sys.exit(0)

    _logging.basicConfig(level=_logging.WARNING,
                         stream = stderr,
                         format = __prog__ + " " + _("note") + ": %(message)s")

    try:
        cmd_process(cargs, stdout)
    except KeyboardInterrupt:
        stdout.flush()
        error("%s", _("Interrupted!"))
        _sys.exit(1)
    except TrurlFailure as exc:
        stdout.flush()
        die(exc.code, "%s", str(exc))
    except Exception as exc:
        stdout.flush()
        stderr.write_str(str_Exception(exc))
        stderr.flush()
        _sys.exit(1)

    stdout.flush()
    stderr.flush()
    _sys.exit(0)

def parse(argv : list[str]) -> argparse.Namespace:
    return make_argparser().parse_intermixed_args(argv)

def run(argv : list[str]) -> str:
    cargs = parse(argv)
    with TIOWrappedWriter(_io.BytesIO()) as f:
        cmd_process(cargs, f)
        data = f.fobj.getvalue()
    return data.decode("utf-8")

def test_parse_exit_codes() -> None:
    def check(argv : list[str], code : ErrorCode) -> None:
        try:
            parse(argv)
        except SystemExit as exc:
            got = exc.code
        except TrurlFailure as exc:
            got = exc.code
        else:
            raise CatastrophicFailure("parsing %s did not fail", argv)
        if got != code:
            raise CatastrophicFailure("while parsing %s, got exit code %s, expected %d", argv, got, code)

    check(["--set"], ErrorCode.ARG)
    check(["example.org", "-g"], ErrorCode.ARG)
    check(["--bogus", "example.org"], ErrorCode.FLAG)
    check(["-g", "{host}", "--get", "{port}"], ErrorCode.FLAG)
    check(["--redirect", "a", "--redirect", "b"], ErrorCode.FLAG)
    check(["-f", "a", "--url-file", "b"], ErrorCode.FLAG)
    check(["--iterate", "hosts=a", "--iterate", "ports=1"], ErrorCode.ITER)
    check(["-a", "fragment=x"], ErrorCode.APPEND)

def test_parse() -> None:
    cargs = parse(["-s", "path=/x", "example.org", "--trim", "query=a", "-a", "query=b c", "--url", "example.net", "-a", "path=d"])
    assert cargs.urls == ["example.org"]
    assert cargs.url_opts == ["example.net"]
    assert cargs.variant.set_list == ["path=/x"]
    assert cargs.variant.trim_list == ["query=a"]
    assert cargs.variant.append_query == ["b%20c"]
    assert cargs.variant.append_path == ["d"]

    cargs = parse(["--iterate", "hosts=a b", "--json", "--verify"])
    chain = make_chain(cargs)
    assert len(chain) == 2
    assert all(v.json and v.verify for v in chain)
    assert [v.set_list for v in chain] == [["host=a"], ["host=b"]]

    chain = make_chain(parse([]))
    assert len(chain) == 1
    assert chain[0].set_list == []

def test_cmd_process() -> None:
    assert run(["example.org/a/../b", "--url", "https://example.org:443/"]) == \
        "http://example.org/b\nhttps://example.org/\n"
    assert run(["-s", "scheme=https", "-s", "host=example.org", "-s", "path=/x y"]) == \
        "https://example.org/x%20y\n"
    assert run(["--iterate", "ports=81 8080", "-g", "{port}", "http://example.org/"]) == "81\n8080\n"
    # an explicit default port is hidden, an absent one is filled in
    assert run(["--iterate", "ports=80 8080", "-g", "{port}|{url}", "http://example.org/"]) == \
        "|http://example.org/\n8080|http://example.org:8080/\n"

    try:
        run([])
    except TrurlFailure as exc:
        assert exc.code == ErrorCode.URL
    else:
        raise CatastrophicFailure("processing nothing did not fail")

def test_url_file() -> None:
    with _tempfile.TemporaryDirectory() as tmpdir:
        path = _os.path.join(tmpdir, "urls.txt")
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write("example.org\r\n\nhttps://example.net/a\nftp://example.com/last")

        assert run(["-f", path, "ignored.example"]) == \
            "http://example.org/\nhttps://example.net/a\nftp://example.com/last\n"

        try:
            run(["--url-file", _os.path.join(tmpdir, "missing.txt")])
        except TrurlFailure as exc:
            assert exc.code == ErrorCode.FILE
        else:
            raise CatastrophicFailure("reading a missing file did not fail")

        path = _os.path.join(tmpdir, "binary.txt")
        with open(path, "wb") as bf:
            bf.write(b"http://example.org/\xff\nhttp://example.net/\n")

        assert run(["-f", path]) == "http://example.net/\n"

        try:
            run(["--verify", "-f", path])
        except TrurlFailure as exc:
            assert exc.code == ErrorCode.BADURL
        else:
            raise CatastrophicFailure("`--verify` accepted invalid UTF-8")

if __name__ == "__main__":
    main()
