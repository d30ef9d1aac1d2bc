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

"""Fatal failures and their exit codes."""

import enum as _enum
import typing as _t

from kisstdlib.exceptions import *

class ErrorCode(_enum.IntEnum):
    FILE   = 1  # `--url-file` does not exist
    APPEND = 2  # `--append` mistake
    ARG    = 3  # a command line option misses its argument
    FLAG   = 4  # a command line flag mistake
    SET    = 5  # a `--set` problem
    MEM    = 6  # out of memory
    URL    = 7  # could not get a URL out of the set components
    TRIM   = 8  # a `--trim` problem
    BADURL = 9  # `--verify` is set and the URL does not parse
    ITER   = 10 # `--iterate` mistake

class TrurlFailure(CatastrophicFailure):
    """A failure that terminates the whole process with `code` exit status."""

    def __init__(self, code : ErrorCode, what : str, *args : _t.Any) -> None:
        super().__init__(what, *args)
        self.code = code

def test_TrurlFailure() -> None:
    exc = TrurlFailure(ErrorCode.TRIM, "Unsupported trim component: %s", "path=x")
    assert exc.code == 8
    assert str(exc) == "Unsupported trim component: path=x"
    assert isinstance(exc, CatastrophicFailure)
