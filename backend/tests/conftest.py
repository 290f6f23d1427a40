"""Shared fixtures: an in-memory document store and deterministic clocks."""

import copy
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

import logfire
import pytest
from bson import ObjectId

from scriptvoid.batch.exceptions import MutationApplyError
from scriptvoid.batch.mutations import Mutation
from scriptvoid.batch.results import WriteCounts
from scriptvoid.config import Settings
from scriptvoid.storage.cache import TTLCache
from scriptvoid.storage.collections import CODES, LEADERBOARD, ONLINE, SCRIPTS, USERS

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

_MISSING = object()


def _comparable(a: Any, b: Any) -> bool:
    numbers = (int, float)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool)
    if isinstance(a, numbers) and isinstance(b, numbers):
        return True
    return type(a) is type(b) or (isinstance(a, datetime) and isinstance(b, datetime))


def _match_operator(value: Any, op: str, target: Any) -> bool:
    present = value is not _MISSING
    if op == "$eq":
        return present and value == target
    if op == "$ne":
        return not present or value != target
    if op == "$in":
        return present and value in target
    if op == "$nin":
        return not present or value not in target
    if op == "$regex":
        pattern, options = target
        flags = re.IGNORECASE if "i" in options else 0
        return isinstance(value, str) and re.search(pattern, value, flags) is not None
    if op == "$exists":
        return present == bool(target)
    if op == "$type":
        kinds = {"string": str, "date": datetime}
        return present and isinstance(value, kinds[target])
    if op in ("$lt", "$lte", "$gt", "$gte"):
        if not present or value is None or not _comparable(value, target):
            return False
        if op == "$lt":
            return value < target
        if op == "$lte":
            return value <= target
        if op == "$gt":
            return value > target
        return value >= target
    raise NotImplementedError(f"operator {op} not supported by the in-memory store")


def matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    """Evaluate the subset of Mongo query syntax the jobs use."""
    for key, condition in filter.items():
        if key == "$or":
            if not any(matches(doc, clause) for clause in condition):
                return False
            continue
        value = doc.get(key, _MISSING)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            condition = dict(condition)
            if "$regex" in condition:
                condition["$regex"] = (condition["$regex"], condition.pop("$options", ""))
            if not all(_match_operator(value, op, target) for op, target in condition.items()):
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


class InMemoryCollection:
    """Implements the ``DocumentCollection`` protocol over a list of dicts."""

    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict[str, Any]] = []
        self.reads = 0
        self.bulk_calls: list[list[Mutation]] = []
        # When set, bulk_apply raises after applying this many operations.
        self.fail_after: Optional[int] = None

    def insert(self, *docs: dict[str, Any]) -> list[Any]:
        ids = []
        for doc in docs:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", ObjectId())
            self.docs.append(doc)
            ids.append(doc["_id"])
        return ids

    def get(self, _id: Any) -> Optional[dict[str, Any]]:
        for doc in self.docs:
            if doc["_id"] == _id:
                return doc
        return None

    def find_one(self, filter: dict[str, Any]) -> Optional[dict[str, Any]]:
        for doc in self.docs:
            if matches(doc, filter):
                return doc
        return None

    async def count(self, filter: dict[str, Any]) -> int:
        self.reads += 1
        return sum(1 for doc in self.docs if matches(doc, filter))

    async def find(
        self,
        filter: dict[str, Any],
        *,
        sort=None,
        skip: int = 0,
        limit: int = 0,
        projection: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        self.reads += 1
        rows = [doc for doc in self.docs if matches(doc, filter)]
        for field, direction in reversed(list(sort or [])):
            rows.sort(
                key=lambda d: (0,) if d.get(field) is None else (1, d[field]),
                reverse=direction < 0,
            )
        rows = rows[skip:]
        if limit:
            rows = rows[:limit]
        if projection:
            keep = {k for k, v in projection.items() if v} | {"_id"}
            rows = [{k: v for k, v in doc.items() if k in keep} for doc in rows]
        return copy.deepcopy(rows)

    async def bulk_apply(self, mutations: Sequence[Mutation]) -> WriteCounts:
        self.bulk_calls.append(list(mutations))
        counts = WriteCounts()
        for index, mutation in enumerate(mutations):
            if self.fail_after is not None and index >= self.fail_after:
                raise MutationApplyError(
                    f"injected failure on {self.name}", collection=self.name, applied=counts
                )
            counts = counts + self._apply(mutation)
        return counts

    def _apply(self, mutation: Mutation) -> WriteCounts:
        targets = [doc for doc in self.docs if matches(doc, mutation.filter)]
        if mutation.kind in ("update_one", "delete_one"):
            targets = targets[:1]

        if mutation.kind.startswith("delete"):
            for doc in targets:
                self.docs.remove(doc)
            return WriteCounts(deleted=len(targets))

        if not targets and mutation.upsert:
            seed = {k: v for k, v in mutation.filter.items() if not k.startswith("$")}
            doc = {"_id": ObjectId(), **seed, **copy.deepcopy(mutation.set_fields)}
            self.docs.append(doc)
            return WriteCounts(upserted=1)

        modified = 0
        for doc in targets:
            before = copy.deepcopy(doc)
            doc.update(copy.deepcopy(mutation.set_fields))
            for name in mutation.unset_fields:
                doc.pop(name, None)
            if doc != before:
                modified += 1
        return WriteCounts(matched=len(targets), modified=modified)


class InMemoryStore:
    """Implements the ``DocumentStore`` protocol."""

    def __init__(self) -> None:
        self._collections = {
            name: InMemoryCollection(name) for name in (SCRIPTS, CODES, USERS, LEADERBOARD, ONLINE)
        }

    def collection(self, name: str) -> InMemoryCollection:
        return self._collections[name]

    @property
    def reads(self) -> int:
        return sum(c.reads for c in self._collections.values())


class FakeTimer:
    """Monotonic timer in seconds that only moves when told to."""

    def __init__(self, start: float = 0.0, step: float = 0.0):
        self.value = start
        self.step = step

    def advance(self, seconds: float) -> None:
        self.value += seconds

    def __call__(self) -> float:
        current = self.value
        self.value += self.step
        return current


@pytest.fixture(scope="session", autouse=True)
def _quiet_logfire():
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        cron_secret="test-secret",
        config_file=Path("does-not-exist.yaml"),
    )


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def clock():
    return lambda: NOW


@pytest.fixture()
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def cache() -> TTLCache:
    return TTLCache()
