"""Mutation plans: idempotent write operations staged by a job transform.

A plan groups operations by target collection so each collection is written
with one bulk call, in a fixed order. Plans also carry named tallies that
surface as job-specific counters.
"""

from collections import Counter
from typing import Any, Iterator, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

MutationKind = Literal["update_one", "update_many", "delete_one", "delete_many"]


class Mutation(BaseModel):
    """One write operation keyed by a document-identity filter.

    Updates only ever assign terminal values (``$set``) or remove fields
    (``$unset``); there are no increments, so re-applying a plan is a no-op.
    """

    model_config = ConfigDict(frozen=True)

    kind: MutationKind
    filter: dict[str, Any]
    set_fields: dict[str, Any] = Field(default_factory=dict)
    unset_fields: tuple[str, ...] = ()
    upsert: bool = False

    @model_validator(mode="after")
    def _check_update_has_fields(self) -> "Mutation":
        if self.kind.startswith("update") and not (self.set_fields or self.unset_fields):
            raise ValueError("update mutation needs set_fields or unset_fields")
        return self

    @classmethod
    def update(
        cls,
        filter: dict[str, Any],
        set_fields: Optional[dict[str, Any]] = None,
        unset_fields: tuple[str, ...] = (),
        upsert: bool = False,
    ) -> "Mutation":
        return cls(
            kind="update_one",
            filter=filter,
            set_fields=set_fields or {},
            unset_fields=tuple(unset_fields),
            upsert=upsert,
        )

    @classmethod
    def update_many(
        cls,
        filter: dict[str, Any],
        set_fields: Optional[dict[str, Any]] = None,
        unset_fields: tuple[str, ...] = (),
    ) -> "Mutation":
        return cls(
            kind="update_many",
            filter=filter,
            set_fields=set_fields or {},
            unset_fields=tuple(unset_fields),
        )

    @classmethod
    def delete(cls, filter: dict[str, Any]) -> "Mutation":
        return cls(kind="delete_one", filter=filter)

    @classmethod
    def delete_many(cls, filter: dict[str, Any]) -> "Mutation":
        return cls(kind="delete_many", filter=filter)

    def update_document(self) -> dict[str, Any]:
        """Mongo update document for update kinds."""
        doc: dict[str, Any] = {}
        if self.set_fields:
            doc["$set"] = dict(self.set_fields)
        if self.unset_fields:
            doc["$unset"] = {name: "" for name in self.unset_fields}
        return doc


class MutationPlan:
    """Ordered mutations per collection plus named tallies.

    ``order`` fixes the write order of the named collections up front;
    any other collection is written after them in first-touched order.
    """

    def __init__(self, order: Sequence[str] = ()) -> None:
        self._groups: dict[str, list[Mutation]] = {name: [] for name in order}
        self.tallies: Counter = Counter()

    def add(self, collection: str, mutation: Mutation) -> "MutationPlan":
        self._groups.setdefault(collection, []).append(mutation)
        return self

    def tally(self, name: str, amount: int = 1) -> "MutationPlan":
        self.tallies[name] += amount
        return self

    def extend(self, other: "MutationPlan") -> "MutationPlan":
        for collection, mutations in other.groups():
            self._groups.setdefault(collection, []).extend(mutations)
        self.tallies.update(other.tallies)
        return self

    def groups(self) -> Iterator[tuple[str, list[Mutation]]]:
        for collection, mutations in self._groups.items():
            if mutations:
                yield collection, mutations

    def mutations_for(self, collection: str) -> list[Mutation]:
        return list(self._groups.get(collection, []))

    def __len__(self) -> int:
        return sum(len(m) for m in self._groups.values())

    def __bool__(self) -> bool:
        return len(self) > 0 or bool(self.tallies)
