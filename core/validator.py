"""Field Validator: runs one field's ordered condition chain.

Conditions run strictly one after another; an asynchronous condition is
awaited before the next one starts, because later conditions read state that
earlier ones record (jurisdiction before directory lookup). The first
non-success outcome stops the chain.

Every run is tagged with a per-field sequence number. A condition that
resumes after a network call checks its attempt is still the latest one
before touching shared state; a superseded attempt is dropped silently.
"""

from __future__ import annotations

import abc
import inspect
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Hashable, Mapping, Union

from core.fields import SUCCESS, FieldId, FieldState, Outcome, OutcomeKind, Reason, Value

if TYPE_CHECKING:
    from core.session import FormSession

logger = logging.getLogger(__name__)


class StaleResolution(Exception):
    """Raised when a resumed attempt is no longer the latest for its key."""

    def __init__(self, key: Hashable, number: int):
        self.key = key
        self.number = number
        super().__init__(f"attempt #{number} for {key!r} was superseded")


class SequenceCounter:
    """Monotonic per-key request counter."""

    def __init__(self) -> None:
        self._latest: dict[Hashable, int] = {}

    def issue(self, key: Hashable) -> int:
        number = self._latest.get(key, 0) + 1
        self._latest[key] = number
        return number

    # Issuing a new number is all it takes to orphan whatever is in flight.
    invalidate = issue

    def latest(self, key: Hashable) -> int:
        return self._latest.get(key, 0)

    def is_current(self, key: Hashable, number: int) -> bool:
        return self._latest.get(key, 0) == number


@dataclass(frozen=True)
class Attempt:
    key: Hashable
    number: int
    counter: SequenceCounter

    @classmethod
    def start(cls, counter: SequenceCounter, key: Hashable) -> Attempt:
        return cls(key, counter.issue(key), counter)

    @property
    def current(self) -> bool:
        return self.counter.is_current(self.key, self.number)

    def ensure_current(self) -> None:
        if not self.current:
            raise StaleResolution(self.key, self.number)


ConditionResult = Union[Outcome, Awaitable[Outcome]]


class Condition(abc.ABC):
    """One link of a field's validation chain."""

    @abc.abstractmethod
    def evaluate(self, value: str, attempt: Attempt) -> ConditionResult:
        """Return an Outcome, or an awaitable resolving to one."""
        raise NotImplementedError


class RangeCondition(Condition):
    def __init__(self, minimum: float, maximum: float):
        self.minimum = minimum
        self.maximum = maximum

    def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        try:
            number = float(value)
        except ValueError:
            return Outcome.warn(Reason.RANGE_INVALID)
        if self.minimum <= number <= self.maximum:
            return SUCCESS
        return Outcome.warn(Reason.RANGE_INVALID)


def to_number(value: str) -> int | float:
    """'20' -> 20, '20.5' -> 20.5."""
    number = float(value)
    return int(number) if number.is_integer() else number


def clamp_and_round(minimum: float, maximum: float, multiplier: int) -> Callable[[str], str]:
    """Transform that clamps into [minimum, maximum] and rounds to 1/multiplier.

    Halves round up (20.25 -> 20.3 at multiplier 10). Non-numeric input is
    returned untouched so the range condition can reject it.
    """

    def transform(raw: str) -> str:
        try:
            number = float(raw)
        except ValueError:
            return raw
        if math.isnan(number):
            return raw
        clamped = min(max(number, minimum), maximum)
        rounded = math.floor(clamped * multiplier + 0.5) / multiplier
        return str(to_number(repr(rounded)))

    return transform


@dataclass(frozen=True)
class FieldSpec:
    conditions: tuple[Condition, ...]
    transform: Callable[[str], str] | None = None
    parse: Callable[[str], Value] = str
    # runs when the field is emptied, e.g. to drop resolution context
    on_clear: Callable[[], None] | None = None


class FieldValidator:
    """Applies each field's FieldSpec and commits valid values to the session."""

    def __init__(
        self,
        session: FormSession,
        table: Mapping[FieldId, FieldSpec],
        on_complete: Callable[[], None],
        on_pending: Callable[[], None] | None = None,
    ):
        self._session = session
        self._table = dict(table)
        self._on_complete = on_complete
        self._on_pending = on_pending

    def spec(self, field_id: FieldId) -> FieldSpec:
        return self._table[field_id]

    def clear(self, field_id: FieldId) -> FieldState:
        """Reset *field_id* to UNVALIDATED and orphan any run in flight."""
        self._session.sequence.invalidate(field_id)
        state = self._session.fields[field_id]
        state.reset()
        self._session.withdraw(field_id)
        return state

    async def validate(
        self,
        field_id: FieldId,
        raw_value: str | None,
        *,
        apply_transform: bool = True,
    ) -> FieldState:
        spec = self._table[field_id]
        state = self._session.fields[field_id]
        raw = "" if raw_value is None else str(raw_value).strip()

        if not raw:
            self.clear(field_id)
            if spec.on_clear is not None:
                spec.on_clear()
            self._on_complete()
            return state

        attempt = Attempt.start(self._session.sequence, field_id)
        if apply_transform and spec.transform is not None:
            raw = spec.transform(raw)
        state.mark_pending(raw)
        self._session.withdraw(field_id)
        if self._on_pending is not None:
            self._on_pending()

        try:
            failure = await self._run_chain(spec.conditions, raw, attempt)
        except StaleResolution:
            logger.warning("discarding superseded %s run #%d", field_id.value, attempt.number)
            return state

        if failure is None:
            value = spec.parse(raw)
            state.mark_valid(value)
            self._session.commit(field_id, value)
            logger.info("%s committed", field_id.value)
        else:
            state.mark_invalid(failure.reason, display=failure.kind is OutcomeKind.WARNING)
            logger.debug("%s invalid: %s", field_id.value, failure.reason)
        self._on_complete()
        return state

    async def _run_chain(
        self, conditions: tuple[Condition, ...], value: str, attempt: Attempt
    ) -> Outcome | None:
        for condition in conditions:
            outcome = condition.evaluate(value, attempt)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            attempt.ensure_current()
            logger.debug("%s → %s", type(condition).__name__, outcome.kind.value)
            if not outcome.ok:
                return outcome
        return None
