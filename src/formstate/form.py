"""Form — the mutation API tying store, validation, and notification together.

Every public mutation follows the same shape: update the Store, run
validation if the mutation can affect validity, then notify field observers
followed by form observers. batch()/transaction() defer the notification
step until the outermost batch exits; the mutations themselves still happen
immediately.

Usage:
    form = create_form(on_submit=save, validate=check)
    unregister = form.register_field("username", print, {"error": True})
    form.change("username", "erikras")
    form.submit()
"""

from __future__ import annotations

import asyncio
import enum
import functools
import inspect
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, NamedTuple

from formstate.dispatch import deliver, filter_field_state, filter_form_state, notify
from formstate.store import FieldRecord, FormRecord, FormStore
from formstate.structure import FORM_ERROR, get_in, set_in, shallow_equal
from formstate.subscribers import Mask, Observer, SubscriberRegistry
from formstate.validation import ValidationRunner

logger = logging.getLogger("formstate.form")

Unsubscribe = Callable[[], None]


class SubmitMode(enum.Enum):
    """How on_submit reports its outcome.

    SYNC:     on_submit(values) returns an error tree or None.
    CALLBACK: on_submit(values, complete) calls complete(errors) now or later.
    ASYNC:    on_submit(values) returns an awaitable of an error tree or None.
    """

    SYNC = "sync"
    CALLBACK = "callback"
    ASYNC = "async"


@dataclass
class FormConfig:
    on_submit: Callable[..., Any] | None = None
    initial_values: dict | None = None
    validate: Callable[[dict], Any] | None = None
    validate_on_blur: bool = False
    submit_mode: SubmitMode = SubmitMode.SYNC
    debug: Callable[[dict, dict[str, dict]], None] | None = None
    mutators: dict[str, Callable] = field(default_factory=dict)


@dataclass
class FieldConfig:
    """Per-registration validation options.

    validate_fields lists the other fields to revalidate when this one
    changes. None means every field; an empty list means only this one.
    """

    validate: Callable[[Any, dict], Any] | None = None
    validate_fields: list[str] | None = None


class MutableState(NamedTuple):
    """What a mutator may touch: the live form record and field records."""

    form: FormRecord
    fields: dict[str, FieldRecord]


class Tools(NamedTuple):
    change_value: Callable[[MutableState, str, Callable[[Any], Any]], None]
    get_in: Callable[[Any, str], Any]
    set_in: Callable[[Any, str, Any], dict]
    shallow_equal: Callable[[Any, Any], bool]


def change_value(state: MutableState, name: str, mutate: Callable[[Any], Any]) -> None:
    """Replace the value at name with mutate(current value)."""
    before = get_in(state.form.values, name)
    state.form.values = set_in(state.form.values, name, mutate(before))


TOOLS = Tools(change_value, get_in, set_in, shallow_equal)


class Form:
    """A reactive form: fields, validation, submission, and observers."""

    def __init__(self, config: FormConfig | None) -> None:
        if config is None:
            raise ValueError("No config specified")
        if config.on_submit is None:
            raise ValueError("No on_submit function specified")
        self._config = config
        self._store = FormStore(config.initial_values)
        self._validation = ValidationRunner(self._store, config.validate)
        self._form_subscribers = SubscriberRegistry()
        self._field_subscribers: dict[str, SubscriberRegistry] = {}
        self._batch_depth = 0
        self.mutators: dict[str, Callable[..., Any]] = {
            name: self._bind_mutator(mutator) for name, mutator in config.mutators.items()
        }
        # initial errors
        self._validation.run()

    # --- Notification ---

    def _call_debug(self) -> None:
        debug = self._config.debug
        if debug is None:
            return
        try:
            debug(self._store.compute_form_projection(), self._store.field_projections())
        except Exception:
            logger.exception("debug callback failed")

    def _notify_field_listeners(self) -> None:
        if self._batch_depth:
            return
        store = self._store
        for name in list(store.fields):
            record = store.fields.get(name)
            registry = self._field_subscribers.get(name)
            if record is None or registry is None:
                continue
            state = store.compute_field_projection(name)
            previous = record.last_field_state
            if not shallow_equal(state, previous):
                record.last_field_state = state
                notify(registry, state, previous, filter_field_state)

    def _notify_form_listeners(self) -> None:
        self._call_debug()
        if self._batch_depth:
            return
        store = self._store
        previous = store.last_form_state
        state = store.compute_form_projection()
        if state is not previous:
            store.last_form_state = state
            notify(self._form_subscribers, state, previous, filter_form_state)

    def _notify(self) -> None:
        self._notify_field_listeners()
        self._notify_form_listeners()

    # --- Batching ---

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Defer notifications until the outermost transaction exits.

        Usage:
            with form.transaction():
                form.change("first", "Erik")
                form.change("last", "Rasmussen")
                # observers hear about both at once, here
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._notify()

    def batch(self, fn: Callable[[], Any]) -> Any:
        with self.transaction():
            return fn()

    # --- Field interaction ---

    def focus(self, name: str) -> None:
        record = self._store.get_field(name)
        if record is None or record.active:
            return
        self._store.form.active = name
        record.active = True
        record.visited = True
        self._notify()

    def blur(self, name: str) -> None:
        record = self._store.get_field(name)
        if record is None or not record.active:
            return
        self._store.form.active = None
        record.active = False
        record.touched = True
        if self._config.validate_on_blur:
            self._validation.run(name, self._notify)
        else:
            self._notify()

    def change(self, name: str, value: Any = None) -> None:
        store = self._store
        if store.get_field(name) is None or store.get_value(name) is value:
            return
        store.set_value(name, value)
        if self._config.validate_on_blur:
            self._notify()
        else:
            self._validation.run(name, self._notify)

    # --- Whole-form mutations ---

    def initialize(self, values: dict | None) -> None:
        """Replace values and initial values, and forget interaction and submission history."""
        store = self._store
        form = store.form
        values = dict(values) if values else {}
        form.initial_values = values
        form.values = values
        form.submit_failed = False
        form.submit_succeeded = False
        form.submit_errors = None
        form.submit_error = None
        form.last_submitted_values = None
        for record in store.fields.values():
            record.touched = False
            record.visited = False
            record.submit_error = None
        self._validation.run(callback=self._notify)

    def reset(self) -> None:
        self.initialize(self._store.form.initial_values or {})

    # --- Registration ---

    def _new_field(self, name: str) -> FieldRecord:
        return FieldRecord(
            name=name,
            change=functools.partial(self.change, name),
            blur=functools.partial(self.blur, name),
            focus=functools.partial(self.focus, name),
        )

    def register_field(
        self,
        name: str,
        observer: Observer,
        mask: Mask | None = None,
        config: FieldConfig | None = None,
    ) -> Unsubscribe:
        """Attach an observer to a field, creating the field if needed.

        The observer is delivered the field state exactly once before this
        returns, whatever its mask. Returns a function that detaches the
        observer and its validator; the field itself goes away with its last
        observer.
        """
        store = self._store
        registry = self._field_subscribers.setdefault(name, SubscriberRegistry())
        index = registry.add(observer, mask if mask is not None else ())
        record = store.upsert_field(name, self._new_field)
        if config is not None:
            if config.validate is not None:
                record.validators[index] = config.validate
            if config.validate_fields is not None:
                record.validate_fields = list(config.validate_fields)
        logger.debug("Registered field %r (subscriber %d)", name, index)

        sent_first = False

        def after_validation() -> None:
            nonlocal sent_first
            subscription = registry.get(index)
            if not sent_first and subscription is not None and name in store.fields:
                state = store.compute_field_projection(name)
                deliver(subscription, state, None, filter_field_state, force=True)
                sent_first = True
            self._notify()

        self._validation.run(callback=after_validation)

        unregistered = False

        def unregister() -> None:
            nonlocal unregistered
            if unregistered:
                return
            unregistered = True
            current = store.get_field(name)
            if current is not None:
                current.validators.pop(index, None)
            registry.remove(index)
            if not registry and self._field_subscribers.get(name) is registry:
                del self._field_subscribers[name]
                store.delete_field(name)
                logger.debug("Field %r removed with its last subscriber", name)
            self._validation.run(callback=self._notify)

        return unregister

    def subscribe(self, observer: Observer, mask: Mask) -> Unsubscribe:
        """Observe form state. Delivers once immediately."""
        if observer is None:
            raise ValueError("No callback given.")
        if mask is None:
            raise ValueError("No subscription provided. What values do you want to listen to?")
        index = self._form_subscribers.add(observer, mask)
        state = self._store.compute_form_projection()
        if not self._batch_depth:
            self._store.last_form_state = state
        deliver(self._form_subscribers.get(index), state, state, filter_form_state, force=True)

        def unsubscribe() -> None:
            self._form_subscribers.remove(index)

        return unsubscribe

    # --- Submission ---

    def _complete_submission(self, errors: Any) -> None:
        store = self._store
        form = store.form
        form.submitting = False
        if errors:
            form.submit_failed = True
            form.submit_succeeded = False
            form.submit_errors = errors
            form.submit_error = errors.get(FORM_ERROR)
            for name, record in store.fields.items():
                record.submit_error = get_in(errors, name)
            logger.debug("Submission failed with %d error entries", len(errors))
        else:
            for record in store.fields.values():
                record.submit_error = None
            form.submit_errors = None
            form.submit_error = None
            form.submit_failed = False
            form.submit_succeeded = True
            logger.debug("Submission succeeded")
        self._notify()

    def _abort_submission(self) -> None:
        self._store.form.submitting = False
        self._notify()

    def submit(self) -> asyncio.Future | None:
        """Submit the form unless it has synchronous errors.

        Returns None when the outcome is already known, otherwise a future
        resolving to the submission errors (or None on success).
        """
        store = self._store
        form = store.form
        if store.has_sync_errors():
            for record in store.fields.values():
                record.touched = True
            form.submit_failed = True
            logger.debug("Submission blocked by validation errors")
            self._notify()
            return None

        on_submit = self._config.on_submit
        mode = self._config.submit_mode
        # an ASYNC handler can only be awaited on a running loop
        loop = asyncio.get_running_loop() if mode is SubmitMode.ASYNC else None

        form.submitting = True
        form.submit_failed = False
        form.submit_succeeded = False
        form.last_submitted_values = form.values

        if mode is SubmitMode.CALLBACK:
            return self._submit_with_callback(on_submit, form.values)
        if loop is not None:
            return self._submit_async(loop, on_submit, form.values)
        try:
            errors = on_submit(form.values)
        except Exception:
            self._abort_submission()
            raise
        self._complete_submission(errors)
        return None

    def _submit_with_callback(self, on_submit: Callable, values: dict) -> asyncio.Future | None:
        completion: asyncio.Future | None = None
        completed = False

        def complete(errors: Any = None) -> None:
            nonlocal completed
            if completed:
                return
            completed = True
            self._complete_submission(errors)
            if completion is not None and not completion.done():
                completion.set_result(errors)

        try:
            on_submit(values, complete)
        except Exception:
            self._abort_submission()
            raise
        if completed:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._abort_submission()
            raise
        completion = loop.create_future()
        # let observers see submitting=True while we wait
        self._notify()
        return completion

    def _submit_async(
        self, loop: asyncio.AbstractEventLoop, on_submit: Callable, values: dict
    ) -> asyncio.Task:
        try:
            pending = on_submit(values)
        except Exception:
            self._abort_submission()
            raise
        if not inspect.isawaitable(pending):
            self._abort_submission()
            raise TypeError("on_submit must return an awaitable when submit_mode is ASYNC")
        self._notify()
        return loop.create_task(self._await_submission(pending))

    async def _await_submission(self, pending: Awaitable[Any]) -> Any:
        try:
            errors = await pending
        except BaseException:
            self._abort_submission()
            raise
        self._complete_submission(errors)
        return errors

    # --- Queries ---

    def get_state(self) -> dict:
        return self._store.compute_form_projection()

    def get_registered_fields(self) -> list[str]:
        return list(self._store.fields)

    # --- Mutators ---

    def _bind_mutator(self, mutator: Callable) -> Callable[..., Any]:
        @functools.wraps(mutator)
        def run(*args: Any) -> Any:
            with self.transaction():
                result = mutator(args, MutableState(self._store.form, self._store.fields), TOOLS)
                self._validation.run(callback=self._notify)
            return result

        return run

    def __repr__(self) -> str:
        return f"Form(fields={self.get_registered_fields()!r})"


def create_form(config: FormConfig | None = None, **options: Any) -> Form:
    """Build a Form from a FormConfig or from FormConfig keyword options.

    Usage:
        form = create_form(on_submit=lambda values: None, initial_values={"a": 1})
    """
    if config is None and options:
        config = FormConfig(**options)
    return Form(config)
