"""
In-memory stand-in for the Supabase query builder used by the repositories.

Supports the subset of postgrest-py the repositories call:
table().select/insert/update/delete, eq/neq/in_/lt/contains filters,
order, limit and execute. Responses carry `data` and `error` like the real
client.

Failures are injected per (table, operation):

    db.fail("payments", "insert")            # next insert into payments fails
    db.fail("sales", "update", times=2)      # next two sale updates fail
    db.fail("units", "update", skip=1)       # let one through, then fail
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4


@dataclass
class _FailureRule:
    table: str
    operation: str
    skip: int
    times: int
    message: str


def _same(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is right
    return str(left) == str(right)


class _Query:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    # operations

    def select(self, *_columns: str, **_kwargs: Any) -> "_Query":
        self._operation = "select"
        return self

    def insert(self, payload: Any) -> "_Query":
        self._operation = "insert"
        self._payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "_Query":
        self._operation = "update"
        self._payload = payload
        return self

    def delete(self) -> "_Query":
        self._operation = "delete"
        return self

    # filters

    def eq(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: _same(row.get(column), value))
        return self

    def neq(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: not _same(row.get(column), value))
        return self

    def in_(self, column: str, values: List[Any]) -> "_Query":
        wanted = {str(v) for v in values}
        self._filters.append(lambda row: row.get(column) is not None and str(row.get(column)) in wanted)
        return self

    def lt(self, column: str, value: Any) -> "_Query":
        self._filters.append(lambda row: row.get(column) is not None and str(row.get(column)) < str(value))
        return self

    def contains(self, column: str, values: List[Any]) -> "_Query":
        wanted = {str(v) for v in values}
        self._filters.append(lambda row: wanted <= {str(v) for v in (row.get(column) or [])})
        return self

    def order(self, column: str, desc: bool = False) -> "_Query":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "_Query":
        self._limit = count
        return self

    # execution

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> SimpleNamespace:
        self._db.calls.append((self._table, self._operation))
        error = self._db._take_failure(self._table, self._operation)
        if error is not None:
            return SimpleNamespace(data=None, error=error)

        rows = self._db.tables.setdefault(self._table, [])

        if self._operation == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [copy.deepcopy(row) for row in payload]
            rows.extend(inserted)
            return SimpleNamespace(data=copy.deepcopy(inserted), error=None)

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated, error=None)

        if self._operation == "delete":
            kept = [row for row in rows if not self._matches(row)]
            deleted = [copy.deepcopy(row) for row in rows if self._matches(row)]
            self._db.tables[self._table] = kept
            return SimpleNamespace(data=deleted, error=None)

        selected = [copy.deepcopy(row) for row in rows if self._matches(row)]
        if self._order is not None:
            column, desc = self._order
            selected.sort(
                key=lambda row: (row.get(column) is None, row.get(column) if row.get(column) is not None else ""),
                reverse=desc,
            )
        if self._limit is not None:
            selected = selected[: self._limit]
        return SimpleNamespace(data=selected, error=None)


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self._failures: List[_FailureRule] = []

    def table(self, name: str) -> _Query:
        return _Query(self, name)

    def fail(self, table: str, operation: str, *, times: int = 1, skip: int = 0, message: str = "injected failure") -> None:
        self._failures.append(_FailureRule(table, operation, skip, times, message))

    def _take_failure(self, table: str, operation: str) -> Optional[str]:
        for rule in self._failures:
            if rule.table != table or rule.operation != operation or rule.times <= 0:
                continue
            if rule.skip > 0:
                rule.skip -= 1
                return None
            rule.times -= 1
            return f"{rule.message} ({operation} {table})"
        return None

    # seeding helpers

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def add_client(self, full_name: str = "Amina Benali", **fields: Any) -> str:
        client_id = str(fields.pop("client_id", uuid4()))
        self.rows("clients").append({"client_id": client_id, "full_name": full_name, **fields})
        return client_id

    def add_unit(
        self,
        unit_number: str,
        *,
        price_full: Any = "10000.00",
        price_installment: Any = "12000.00",
        purchase_cost: Any = "6000.00",
        status: str = "Available",
        **fields: Any,
    ) -> str:
        unit_id = str(fields.pop("unit_id", uuid4()))
        self.rows("units").append(
            {
                "unit_id": unit_id,
                "unit_number": unit_number,
                "area_m2": fields.pop("area_m2", "250.00"),
                "purchase_cost": purchase_cost,
                "price_full": price_full,
                "price_installment": price_installment,
                "status": status,
                "kind": fields.pop("kind", "Land"),
                **fields,
            }
        )
        return unit_id

    def unit_status(self, unit_id: Any) -> str:
        return next(row["status"] for row in self.rows("units") if row["unit_id"] == str(unit_id))

    def sale_row(self, sale_id: Any) -> Dict[str, Any]:
        return next(row for row in self.rows("sales") if row["sale_id"] == str(sale_id))
