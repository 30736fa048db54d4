"""Validation orchestration — record-level and field-level validators, merged.

One validation cycle:

1. With no validators left, clear every error and stop.
2. Run the record-level validator once, on a copy of the values.
3. Run every field validator in registration order. All of them run; the
   first synchronous truthy result is the field's error.
4. Merge: a field-level error beats the record-level error at the same path.
5. If any result is deferred, bump ``validating``, publish the synchronous
   outcome immediately, and merge again once every deferred result of the
   cycle has settled.

Deferred results are applied in the order they settle. A newer cycle does
not cancel an older one: whichever settles last wins until the next
synchronous pass overwrites it. Fields unregistered before their result
settles are skipped.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from formstate.store import FieldRecord, FormStore
from formstate.structure import FORM_ERROR, get_in, set_in, shallow_equal

logger = logging.getLogger("formstate.validation")


@dataclass(frozen=True)
class Immediate:
    """A validator outcome known right away."""

    error: Any = None


@dataclass(frozen=True)
class Deferred:
    """A validator outcome that will arrive later."""

    awaitable: Awaitable[Any]


ValidationResult = Union[Immediate, Deferred]


def as_result(outcome: Any) -> ValidationResult:
    """Tag a raw validator return value. Awaitables become Deferred."""
    if isinstance(outcome, (Immediate, Deferred)):
        return outcome
    if inspect.isawaitable(outcome):
        return Deferred(outcome)
    return Immediate(outcome)


def _is_leaf(error: Any) -> bool:
    """A falsy error stored at a path, as opposed to a subtree of child errors."""
    return error is not None and not isinstance(error, (Mapping, list, tuple))


async def _settle(awaitable: Awaitable[Any], apply: Callable[[Any], None]) -> None:
    apply(await awaitable)


class ValidationRunner:
    """Runs validators against a FormStore and writes the merged errors back."""

    def __init__(
        self,
        store: FormStore,
        validate: Callable[[dict], Any] | None = None,
    ) -> None:
        self._store = store
        self._validate = validate

    def has_rules(self) -> bool:
        return self._validate is not None or any(
            record.validators for record in self._store.fields.values()
        )

    @staticmethod
    def _clear(store: FormStore) -> None:
        """Nothing left to validate: no errors anywhere."""
        for record in store.fields.values():
            record.field_error = None
            record.error = None
        if store.form.errors:
            store.form.errors = {}
        store.form.error = None

    def _targets(self, names: list[str], changed: str | None) -> list[str]:
        """Fields whose validators re-run when changed was the field that moved."""
        if changed is None:
            return names
        record = self._store.fields.get(changed)
        if record is None or record.validate_fields is None:
            return names
        wanted = {changed, *record.validate_fields}
        return [name for name in names if name in wanted]

    def _run_field(
        self, record: FieldRecord, field_errors: dict[str, Any]
    ) -> list[Awaitable[None]]:
        name = record.name
        value = self._store.get_value(name)
        all_values = self._store.form.values
        error = None
        pending = []

        def apply_deferred(result: Any) -> None:
            # a synchronous error from this cycle outranks a late answer;
            # among late answers the last to settle wins
            if not error:
                field_errors[name] = result

        for validator in list(record.validators.values()):
            result = as_result(validator(value, all_values))
            if isinstance(result, Deferred):
                pending.append(_settle(result.awaitable, apply_deferred))
            elif not error:
                error = result.error
        field_errors[name] = error
        return pending

    def run(
        self,
        changed: str | None = None,
        callback: Callable[[], None] | None = None,
    ) -> None:
        """Run one validation cycle. callback fires after each merge."""
        store = self._store
        if not self.has_rules():
            self._clear(store)
            if callback is not None:
                callback()
            return

        names = list(store.fields)
        record_errors: dict = {}
        field_errors: dict[str, Any] = {}
        pending: list[Awaitable[None]] = []

        def apply_record(errors: Any) -> None:
            nonlocal record_errors
            record_errors = errors or {}

        if self._validate is not None:
            result = as_result(self._validate(copy.deepcopy(store.form.values)))
            if isinstance(result, Deferred):
                pending.append(_settle(result.awaitable, apply_record))
            else:
                apply_record(result.error)

        for name in self._targets(names, changed):
            pending.extend(self._run_field(store.fields[name], field_errors))

        def process() -> None:
            form = store.form
            merged = dict(record_errors)
            for name in names:
                record = store.fields.get(name)
                if record is None:
                    continue
                if name in field_errors:
                    record.field_error = field_errors[name]
                # field-level first, then record-level or an ancestor field's error
                error = record.field_error or get_in(merged, name)
                if error:
                    merged = set_in(merged, name, error)
                elif _is_leaf(get_in(merged, name)):
                    merged = set_in(merged, name, None)
                record.error = error
            if not shallow_equal(form.errors, merged):
                form.errors = merged
            form.error = record_errors.get(FORM_ERROR)

        if not pending:
            process()
            if callback is not None:
                callback()
            return

        loop = asyncio.get_running_loop()
        process()
        store.form.validating += 1
        logger.debug("Validation deferred on %d result(s)", len(pending))
        # publish the synchronous outcome while the rest is in flight
        if callback is not None:
            callback()

        def on_settled(gathered: asyncio.Future) -> None:
            store.form.validating -= 1
            if not gathered.cancelled() and gathered.exception() is None:
                process()
            if callback is not None:
                callback()
            gathered.result()

        tasks = [loop.create_task(awaitable) for awaitable in pending]
        asyncio.gather(*tasks).add_done_callback(on_settled)
