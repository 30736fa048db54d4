"""Store — the canonical form and field records plus their published projections.

The Store is the single source of truth. Everything an observer sees is a
projection computed on demand from these records; projections are never
written back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from formstate.structure import get_in, set_in, shallow_equal

FORM_SUBSCRIPTION_ITEMS = (
    "active",
    "dirty",
    "dirty_since_last_submit",
    "error",
    "errors",
    "initial_values",
    "invalid",
    "pristine",
    "submit_error",
    "submit_errors",
    "submit_failed",
    "submit_succeeded",
    "submitting",
    "valid",
    "validating",
    "values",
)

FIELD_SUBSCRIPTION_ITEMS = (
    "active",
    "dirty",
    "dirty_since_last_submit",
    "error",
    "initial",
    "invalid",
    "length",
    "pristine",
    "submit_error",
    "submit_failed",
    "submit_succeeded",
    "touched",
    "valid",
    "value",
    "visited",
)


@dataclass
class FormRecord:
    """Internal form state. pristine/valid are refreshed by compute_form_projection()."""

    values: dict = field(default_factory=dict)
    initial_values: dict | None = None
    errors: dict = field(default_factory=dict)
    active: str | None = None
    error: Any = None
    submitting: bool = False
    submit_failed: bool = False
    submit_succeeded: bool = False
    submit_errors: dict | None = None
    submit_error: Any = None
    validating: int = 0
    last_submitted_values: dict | None = None
    pristine: bool = True
    valid: bool = True


@dataclass
class FieldRecord:
    """Internal state of one registered field.

    value/initial are not stored here; they are read through the form's
    value trees so nested fields stay consistent with their parents.
    """

    name: str
    change: Callable[[Any], None]
    blur: Callable[[], None]
    focus: Callable[[], None]
    active: bool = False
    touched: bool = False
    visited: bool = False
    error: Any = None
    field_error: Any = None
    submit_error: Any = None
    validators: dict[int, Callable] = field(default_factory=dict)
    validate_fields: list[str] | None = None
    last_field_state: dict | None = None


class FormStore:
    """Owns the form record, the field records, and the last published form state."""

    def __init__(self, initial_values: dict | None = None) -> None:
        self.form = FormRecord(
            values=dict(initial_values) if initial_values else {},
            initial_values=dict(initial_values) if initial_values is not None else None,
        )
        self.fields: dict[str, FieldRecord] = {}
        self.last_form_state: dict | None = None

    # --- Values ---

    def get_value(self, name: str) -> Any:
        return get_in(self.form.values, name)

    def set_value(self, name: str, value: Any) -> None:
        self.form.values = set_in(self.form.values, name, value)

    def get_initial(self, name: str) -> Any:
        if self.form.initial_values is None:
            return None
        return get_in(self.form.initial_values, name)

    # --- Fields ---

    def get_field(self, name: str) -> FieldRecord | None:
        return self.fields.get(name)

    def upsert_field(self, name: str, factory: Callable[[str], FieldRecord]) -> FieldRecord:
        """Return the field record for name, creating it with factory if absent."""
        record = self.fields.get(name)
        if record is None:
            record = self.fields[name] = factory(name)
        return record

    def delete_field(self, name: str) -> None:
        self.fields.pop(name, None)
        if self.form.active == name:
            self.form.active = None

    def has_sync_errors(self) -> bool:
        form = self.form
        return bool(
            form.error
            or form.errors
            or any(record.error for record in self.fields.values())
        )

    # --- Projections ---

    def _dirty_since_last_submit(self, name: str) -> bool:
        last = self.form.last_submitted_values
        if last is None:
            return False
        return self.get_value(name) != get_in(last, name)

    def compute_form_projection(self) -> dict:
        """Recompute pristine/valid and publish the form state.

        Returns the previously published dict itself when nothing changed, so
        callers can detect "no change" by identity.
        """
        form = self.form
        form.pristine = all(
            self.get_value(name) == self.get_initial(name) for name in self.fields
        )
        form.valid = not (
            form.error or form.submit_error or form.errors or form.submit_errors
        )
        state = {
            "active": form.active,
            "dirty": not form.pristine,
            "dirty_since_last_submit": any(
                self._dirty_since_last_submit(name) for name in self.fields
            ),
            "error": form.error,
            "errors": form.errors,
            "initial_values": form.initial_values,
            "invalid": not form.valid,
            "pristine": form.pristine,
            "submit_error": form.submit_error,
            "submit_errors": form.submit_errors,
            "submit_failed": form.submit_failed,
            "submit_succeeded": form.submit_succeeded,
            "submitting": form.submitting,
            "valid": form.valid,
            "validating": form.validating > 0,
            "values": form.values,
        }
        last = self.last_form_state
        if last is not None and shallow_equal(last, state):
            return last
        return state

    def compute_field_projection(self, name: str) -> dict:
        record = self.fields[name]
        value = self.get_value(name)
        initial = self.get_initial(name)
        pristine = value == initial
        valid = not record.error and not record.submit_error
        return {
            "active": record.active,
            "blur": record.blur,
            "change": record.change,
            "dirty": not pristine,
            "dirty_since_last_submit": self._dirty_since_last_submit(name),
            "error": record.error,
            "focus": record.focus,
            "initial": initial,
            "invalid": not valid,
            "length": len(value) if isinstance(value, (list, tuple)) else None,
            "name": name,
            "pristine": pristine,
            "submit_error": record.submit_error,
            "submit_failed": self.form.submit_failed,
            "submit_succeeded": self.form.submit_succeeded,
            "touched": record.touched,
            "valid": valid,
            "value": value,
            "visited": record.visited,
        }

    def field_projections(self) -> dict[str, dict]:
        return {name: self.compute_field_projection(name) for name in self.fields}
