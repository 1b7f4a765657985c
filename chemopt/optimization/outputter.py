"""Tabular diagnostic output of iterative calculations.

The outputter collects column labels with :meth:`Outputter.add_entry` and
values with :meth:`Outputter.add_value`, then prints them as an aligned
header or row. It is purely observational; an inactive outputter ignores
every call.
"""

from __future__ import annotations

import sys
from typing import IO, Iterable, List, Optional, Sequence

import numpy as np

from .options import OutputterOptions


class Outputter:
    """
    Print aligned header/row tables.

    Example:
        >>> from chemopt.optimization import Outputter, OutputterOptions
        >>> out = Outputter(OutputterOptions(active=True, width=8))
        >>> out.add_entry("iter")
        >>> out.add_entries("x", 2)
        >>> out.output_header()  # doctest: +SKIP
    """

    def __init__(
        self,
        options: Optional[OutputterOptions] = None,
        file: Optional[IO[str]] = None,
    ) -> None:
        self.options = options if options is not None else OutputterOptions()
        self.file = file
        self._entries: List[str] = []
        self._values: List[str] = []

    def set_options(self, options: OutputterOptions) -> None:
        self.options = options

    def add_entry(self, name: str) -> None:
        if self.options.active:
            self._entries.append(name)

    def add_entries(
        self, prefix: str, size: int, names: Optional[Sequence[str]] = None
    ) -> None:
        """Add ``size`` columns labelled by ``names`` or ``prefix[i]``."""
        if not self.options.active:
            return
        for i in range(size):
            if names is not None and i < len(names):
                self._entries.append(str(names[i]))
            else:
                self._entries.append(f"{prefix}[{i}]")

    def add_value(self, value: object) -> None:
        if self.options.active:
            self._values.append(self._format(value))

    def add_values(self, values: Iterable[object]) -> None:
        if self.options.active:
            self._values.extend(self._format(value) for value in values)

    def output_header(self) -> None:
        if not self.options.active:
            return
        line = self._join(self._entries)
        rule = "=" * len(line)
        print(rule, file=self._stream())
        print(line, file=self._stream())
        print(rule, file=self._stream())

    def output_state(self) -> None:
        if not self.options.active:
            return
        print(self._join(self._values), file=self._stream())
        self._values = []

    def _stream(self) -> IO[str]:
        return self.file if self.file is not None else sys.stdout

    def _join(self, cells: Sequence[str]) -> str:
        width = self.options.width
        return self.options.separator.join(cell.ljust(width) for cell in cells)

    def _format(self, value: object) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, np.bool_)):
            return str(bool(value))
        if isinstance(value, (int, np.integer)):
            return str(int(value))
        precision = self.options.precision
        number = float(value)
        if self.options.scientific:
            return f"{number:.{precision}e}"
        if self.options.fixed:
            return f"{number:.{precision}f}"
        return f"{number:.{precision}g}"


__all__ = ["Outputter"]
