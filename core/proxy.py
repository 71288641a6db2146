"""Proxy (Neighbour) Resolver.

Runs the postcode → directory → certificate pipeline a second time against a
neighbour's address. Its values only ever land in primary fields that are
not already Valid; a primary Valid value always wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from core.certificate import fetch_record
from core.directory import (
    NEIGHBOUR_ADDRESS_KEY,
    AddressCertificateEntry,
    AddressOption,
    AddressSelector,
    AddressSentinel,
    DirectoryState,
)
from core.fields import (
    CERTIFICATE_FIELDS,
    NEIGHBOUR_FIELDS,
    NEIGHBOUR_NOTICES,
    NEIGHBOUR_OF,
    FieldId,
    Jurisdiction,
    Notice,
    Reason,
)
from core.validator import Attempt, StaleResolution

if TYPE_CHECKING:
    from core.session import FormSession

logger = logging.getLogger(__name__)


@dataclass
class ProxyContext(DirectoryState):
    # primary fields this neighbour lookup is meant to fill
    scope: frozenset[FieldId] = field(default_factory=lambda: frozenset(CERTIFICATE_FIELDS))


class ProxyResolver:
    def __init__(self, session: FormSession):
        self._session = session

    @property
    def context(self) -> ProxyContext | None:
        return self._session.context.proxy

    def open(self, scope: Iterable[FieldId]) -> ProxyContext:
        """Open the neighbour flow, seeded with the primary postcode's address list."""
        session = self._session
        primary = session.context
        self._discard_neighbour_state()

        proxy = ProxyContext(
            jurisdiction=primary.jurisdiction,
            directory_reachable=primary.directory_reachable,
            directory_errored=primary.directory_errored,
            selector=AddressSelector(
                entries=list(primary.selector.entries),
                include_not_listed=False,
                listed=primary.selector.listed,
            ),
            scope=frozenset(scope),
        )
        primary.proxy = proxy

        postcode = session.fields[FieldId.POSTCODE]
        if postcode.is_valid:
            session.fields[FieldId.NEIGHBOUR_POSTCODE].mark_pending(postcode.raw_value)
            session.fields[FieldId.NEIGHBOUR_POSTCODE].mark_valid(postcode.committed_value)
            if proxy.jurisdiction is Jurisdiction.SCOTLAND:
                session.notices.add(Notice.NEIGHBOUR_SCOTTISH_POSTCODE)
            if not proxy.directory_reachable:
                session.notices.add(Notice.NEIGHBOUR_DIRECTORY_UNREACHABLE)
            if proxy.directory_errored:
                session.notices.add(Notice.NEIGHBOUR_DIRECTORY_ERROR)

        logger.info("neighbour lookup opened for %s", sorted(f.value for f in proxy.scope))
        return proxy

    def close(self, restore_manual_entry: bool = True) -> None:
        """Abandon the neighbour flow. Primary field states are left as they are."""
        session = self._session
        was_open = session.context.proxy is not None
        self._discard_neighbour_state()
        session.context.proxy = None
        if restore_manual_entry:
            session.unlock_manual_entry(
                f for f in CERTIFICATE_FIELDS if not session.fields[f].is_valid
            )
        if was_open:
            logger.info("neighbour lookup closed")

    def reset_directory(self) -> None:
        """First link of the neighbour postcode chain."""
        session = self._session
        session.sequence.invalidate(NEIGHBOUR_ADDRESS_KEY)
        for field_id in (FieldId.NEIGHBOUR_EPC_SPACE_HEATING, FieldId.NEIGHBOUR_FLOOR_AREA):
            session.validator.clear(field_id)
        session.notices.difference_update(NEIGHBOUR_NOTICES)
        if self.context is not None:
            self.context.reset_directory()

    async def select_address(self, index: int) -> AddressOption:
        proxy = self.context
        if proxy is None:
            raise RuntimeError("no neighbour lookup is open")
        session = self._session
        selector = proxy.selector
        option = selector.select(index)
        attempt = Attempt.start(session.sequence, NEIGHBOUR_ADDRESS_KEY)

        proxy.selected_certificate_id = None
        for field_id in (FieldId.NEIGHBOUR_EPC_SPACE_HEATING, FieldId.NEIGHBOUR_FLOOR_AREA):
            session.validator.clear(field_id)

        if option is AddressSentinel.SELECT_ADDRESS:
            selector.clear_validation()
            return option

        selector.mark_valid()
        proxy.selected_certificate_id = option.certificate_id
        try:
            await self._apply_certificate(proxy, option, attempt)
        except StaleResolution:
            logger.warning("discarding superseded neighbour certificate #%d", attempt.number)
        return option

    async def _apply_certificate(
        self, proxy: ProxyContext, entry: AddressCertificateEntry, attempt: Attempt
    ) -> None:
        session = self._session
        record, failure = await fetch_record(session, entry.certificate_id, attempt)
        if record is None:
            proxy.selector.mark_invalid(failure)
            return

        for primary_id in CERTIFICATE_FIELDS:
            estimate = record.estimate(primary_id)
            if estimate is None:
                continue
            neighbour_id = NEIGHBOUR_OF[primary_id]
            await session.validator.validate(neighbour_id, str(estimate), apply_transform=False)
            attempt.ensure_current()

            neighbour = session.fields[neighbour_id]
            if primary_id not in proxy.scope or session.fields[primary_id].is_valid:
                continue
            if neighbour.is_valid:
                await session.validator.validate(primary_id, neighbour.raw_value, apply_transform=False)
                logger.info("%s filled from neighbour certificate", primary_id.value)

        if any(not session.fields[f].is_valid for f in proxy.scope):
            proxy.selector.mark_invalid(Reason.DATA_INCOMPLETE)

    def _discard_neighbour_state(self) -> None:
        session = self._session
        session.sequence.invalidate(NEIGHBOUR_ADDRESS_KEY)
        for field_id in NEIGHBOUR_FIELDS:
            session.validator.clear(field_id)
        session.notices.difference_update(NEIGHBOUR_NOTICES)
