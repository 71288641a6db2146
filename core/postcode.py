"""Postcode Resolver: format check, then geocode lookup.

Both the primary and the neighbour postcode chains use these conditions;
``neighbour=True`` routes side effects to the proxy's own context so a
neighbour in another jurisdiction never touches the primary resolution.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from config.constants import POSTCODE_MAX_LENGTH, POSTCODE_TEMPLATES
from core.fields import SUCCESS, Jurisdiction, Notice, Outcome, Reason
from core.validator import Attempt, Condition
from services.errors import RegistryConnectionError, RegistryServiceError
from services.postcodes import redact_postcode

if TYPE_CHECKING:
    from core.session import FormSession

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalise_postcode(raw: str) -> str:
    """Uppercase, drop all whitespace, keep at most 7 characters."""
    return _WHITESPACE_RE.sub("", str(raw or "")).upper()[:POSTCODE_MAX_LENGTH]


def matches_template(postcode: str, template: str) -> bool:
    if len(postcode) != len(template):
        return False
    for char, slot in zip(postcode, template):
        if slot == "A" and not ("A" <= char.upper() <= "Z"):
            return False
        if slot == "9" and not ("0" <= char <= "9"):
            return False
    return True


def check_postcode_format(postcode: str) -> bool:
    """True when *postcode* fits one of the six UK postcode shapes."""
    return any(matches_template(postcode, template) for template in POSTCODE_TEMPLATES)


class PostcodeFormatCondition(Condition):
    """Local shape check; fails silently so half-typed postcodes show no warning."""

    def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        if check_postcode_format(value):
            return SUCCESS
        return Outcome.no_display(Reason.FORMAT_INVALID)


class ResetContextCondition(Condition):
    """First link of a postcode chain: forget everything the old postcode resolved."""

    def __init__(self, session: FormSession, neighbour: bool = False):
        self._session = session
        self._neighbour = neighbour

    def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        if self._neighbour:
            self._session.proxy_resolver.reset_directory()
        else:
            self._session.reset_postcode_context()
        return SUCCESS


class GeocodeCondition(Condition):
    """Resolve coordinates and jurisdiction.

    Scotland is recorded but never fails the field. Primary coordinates go
    straight into the snapshot; a neighbour's are not used.
    """

    def __init__(self, session: FormSession, neighbour: bool = False):
        self._session = session
        self._neighbour = neighbour

    async def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        try:
            result = await self._session.registry.geocode(value)
        except RegistryConnectionError:
            attempt.ensure_current()
            return Outcome.warn(Reason.CONNECTIVITY)
        except RegistryServiceError as exc:
            attempt.ensure_current()
            logger.info("geocode rejected %s: %s", redact_postcode(value), exc.message)
            return Outcome.warn(Reason.SERVICE_ERROR)
        attempt.ensure_current()

        state = self._session.directory_state(self._neighbour)
        if result.is_scotland:
            state.jurisdiction = Jurisdiction.SCOTLAND
            self._session.notices.add(
                Notice.NEIGHBOUR_SCOTTISH_POSTCODE if self._neighbour else Notice.SCOTTISH_POSTCODE
            )
            logger.info("%s is in Scotland", redact_postcode(value))
        if not self._neighbour:
            self._session.commit_coordinates(result.latitude, result.longitude)
        return SUCCESS
