"""Result schema and batches as handed over by the query engine."""
from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple


@dataclass(frozen=True)
class Column:
    name: str
    type: str  # declared type as reported by the engine, e.g. "INTEGER", "VARCHAR"


@dataclass(frozen=True)
class Schema:
    columns: Tuple[Column, ...] = ()

    @classmethod
    def of(cls, pairs: Sequence[Tuple[str, str]]) -> "Schema":
        return cls(tuple(Column(n, t) for n, t in pairs))

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.columns]

    def __len__(self) -> int:
        return len(self.columns)


@dataclass(frozen=True)
class ResultBatch:
    """One chunk of rows; every batch of one execution shares the same schema."""
    schema: Schema
    rows: Tuple[Tuple[Any, ...], ...] = field(default_factory=tuple)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)
