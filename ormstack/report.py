"""Execution reports: which statement ran for which record and preload level.

Every statement run by a :class:`~ormstack.query.Query` is recorded under a
report index: ``"0"``, ``"1"``, ... for the records of a batch (or the root
find), and ``"<parent>-<position>"`` for preload levels, ``<position>`` being
the relation's place among its siblings (``"0-1"`` is the second relation
preloaded under the root find, ``"0-1-0"`` the first relation nested in it).
"""

from typing import Any, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field as PydanticField

from .exec_value import ExecValue


def child_index(parent: Optional[str], position: int) -> str:
    """Report index of the ``position``-th child of ``parent``."""
    return f"{parent}-{position}" if parent else str(position)


class ReportEntry(BaseModel):
    """One executed (or attempted) statement."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: str
    sql: str
    args: Tuple[Any, ...] = ()
    result: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Report(BaseModel):
    """Ordered list of report entries."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    entries: list[ReportEntry] = PydanticField(default_factory=list)

    def record(self, index: str, exec_value: ExecValue, result: Any = None,
               error: Optional[Exception] = None) -> ReportEntry:
        entry = ReportEntry(index=index, sql=exec_value.sql, args=exec_value.args,
                            result=result, error=error)
        self.entries.append(entry)
        return entry

    @property
    def failures(self) -> dict[str, Exception]:
        """Report index -> error, for failed entries (first error per index)."""
        failures: dict[str, Exception] = {}
        for entry in self.entries:
            if entry.error is not None and entry.index not in failures:
                failures[entry.index] = entry.error
        return failures

    def at(self, index: str) -> list[ReportEntry]:
        """Entries recorded under ``index``."""
        return [entry for entry in self.entries if entry.index == index]

    def __iter__(self) -> Iterator[ReportEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


__all__ = ["Report", "ReportEntry", "child_index"]
