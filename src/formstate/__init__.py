"""formstate: reactive form state with mask-filtered observers."""

from importlib.metadata import version as _version

__version__ = _version("formstate")

from formstate.structure import FORM_ERROR, get_in, set_in, shallow_equal, to_path
from formstate.store import FIELD_SUBSCRIPTION_ITEMS, FORM_SUBSCRIPTION_ITEMS, FormStore
from formstate.subscribers import SubscriberRegistry
from formstate.validation import Deferred, Immediate, ValidationRunner
from formstate.form import (
    FieldConfig,
    Form,
    FormConfig,
    MutableState,
    SubmitMode,
    Tools,
    create_form,
)

__all__ = [
    "FORM_ERROR",
    "FIELD_SUBSCRIPTION_ITEMS",
    "FORM_SUBSCRIPTION_ITEMS",
    "Deferred",
    "FieldConfig",
    "Form",
    "FormConfig",
    "FormStore",
    "Immediate",
    "MutableState",
    "SubmitMode",
    "SubscriberRegistry",
    "Tools",
    "ValidationRunner",
    "create_form",
    "get_in",
    "set_in",
    "shallow_equal",
    "to_path",
]
