from __future__ import annotations

from dataclasses import dataclass


QUESTION_TYPES = (
    "text",
    "textarea",
    "select",
    "multiselect",
    "radio",
    "checkbox",
    "number",
    "rating",
)
OPTION_QUESTION_TYPES = frozenset({"select", "multiselect", "radio", "checkbox"})
MULTI_VALUE_QUESTION_TYPES = frozenset({"multiselect", "checkbox"})
NUMERIC_QUESTION_TYPES = frozenset({"number", "rating"})

RATING_MIN = 1
RATING_MAX = 5


def _require_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field_name}' must be a non-empty string")
    return value.strip()


def _require_bool(value: bool, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a boolean")
    return value


def _require_int(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{field_name}' must be an integer")
    return value


def has_options(question_type: str) -> bool:
    return question_type in OPTION_QUESTION_TYPES


@dataclass(frozen=True, slots=True)
class QuestionOption:
    value: str
    label: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _require_non_empty_str(self.value, "value"))
        object.__setattr__(self, "label", _require_non_empty_str(self.label, "label"))


@dataclass(slots=True)
class Question:
    """Exit-survey question authored by a creator.

    ``options`` is only meaningful for choice types and must be ``None`` for
    the others. ``order`` drives display sequence and nothing else.
    """

    id: str
    text: str
    type: str = "text"
    options: tuple[QuestionOption, ...] | None = None
    required: bool = False
    order: int = 0
    active: bool = True

    def __post_init__(self) -> None:
        self.id = _require_non_empty_str(self.id, "id")
        self.text = _require_non_empty_str(self.text, "text")
        self.type = _require_non_empty_str(self.type, "type").lower()
        if self.type not in QUESTION_TYPES:
            raise ValueError(f"'type' must be one of: {', '.join(QUESTION_TYPES)}")

        if has_options(self.type):
            if not self.options:
                raise ValueError(f"'options' must be a non-empty list for '{self.type}' questions")
            options = tuple(self.options)
            if not all(isinstance(option, QuestionOption) for option in options):
                raise ValueError("'options' must contain only QuestionOption objects")
            values = [option.value for option in options]
            if len(set(values)) != len(values):
                raise ValueError("'options' values must be unique")
            self.options = options
        elif self.options is not None:
            raise ValueError(f"'options' must be omitted for '{self.type}' questions")

        self.required = _require_bool(self.required, "required")
        self.order = _require_int(self.order, "order")
        self.active = _require_bool(self.active, "active")

    @property
    def option_values(self) -> tuple[str, ...]:
        if not self.options:
            return ()
        return tuple(option.value for option in self.options)


__all__ = [
    "MULTI_VALUE_QUESTION_TYPES",
    "NUMERIC_QUESTION_TYPES",
    "OPTION_QUESTION_TYPES",
    "QUESTION_TYPES",
    "RATING_MAX",
    "RATING_MIN",
    "Question",
    "QuestionOption",
    "has_options",
]
