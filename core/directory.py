"""Certificate Directory Resolver and the address selector it drives.

The directory is only consulted for Standard-jurisdiction postcodes. Its
failures never fail the postcode field: they are recorded on the context and
the manual-entry fallback picks them up at the end of the chain.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

from config.constants import (
    ADDRESS_LABEL_MAX_CHARS,
    ADDRESS_NOT_LISTED_LABEL,
    EPC_CERTIFICATE_URL,
    EPC_FINDER_URL,
    EPC_POSTCODE_SEARCH_URL,
    EPC_SCOTLAND_URL,
    SELECT_ADDRESS_LABEL,
)
from core.fields import (
    CERTIFICATE_FIELDS,
    SUCCESS,
    FieldState,
    Jurisdiction,
    Notice,
    Outcome,
    Reason,
    Validity,
)
from core.validator import Attempt, Condition
from services.errors import RegistryConnectionError, RegistryServiceError

if TYPE_CHECKING:
    from core.proxy import ProxyContext
    from core.session import FormSession

logger = logging.getLogger(__name__)

# Sequence keys for address selections (fields use their FieldId)
ADDRESS_KEY = "address"
NEIGHBOUR_ADDRESS_KEY = "neighbour-address"

_WORD_START_RE = re.compile(r"(^\w)|(\s+\w)")
_TRAILING_SEP_RE = re.compile(r",\s*$")


def title_case_address(address: str) -> str:
    """'12 EXAMPLE ROAD, COVENTRY' -> '12 Example Road, Coventry'."""
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), address.lower())


@dataclass(frozen=True)
class AddressCertificateEntry:
    address: str
    certificate_id: str

    @property
    def label(self) -> str:
        return _TRAILING_SEP_RE.sub("", self.address[:ADDRESS_LABEL_MAX_CHARS])


def build_entries(rows: list[tuple[str, str]]) -> list[AddressCertificateEntry]:
    return [AddressCertificateEntry(title_case_address(a), c) for a, c in rows]


class AddressSentinel(str, Enum):
    SELECT_ADDRESS = SELECT_ADDRESS_LABEL
    NOT_LISTED = ADDRESS_NOT_LISTED_LABEL


AddressOption = Union[AddressSentinel, AddressCertificateEntry]


def option_label(option: AddressOption) -> str:
    if isinstance(option, AddressSentinel):
        return option.value
    return option.label


@dataclass
class AddressSelector:
    """Selectable list: sentinels first, then the directory's entries in order."""

    entries: list[AddressCertificateEntry] = field(default_factory=list)
    include_not_listed: bool = True
    # set once the directory answered, even with no rows
    listed: bool = False
    selected: AddressOption | None = None
    validity: Validity = Validity.UNVALIDATED
    reason: Reason | None = None
    warning: Reason | None = None

    @property
    def available(self) -> bool:
        return self.listed

    @property
    def options(self) -> list[AddressOption]:
        head: list[AddressOption] = [AddressSentinel.SELECT_ADDRESS]
        if self.include_not_listed:
            head.append(AddressSentinel.NOT_LISTED)
        return head + list(self.entries)

    def populate(self, entries: list[AddressCertificateEntry], listed: bool = True) -> None:
        self.entries = list(entries)
        self.listed = listed
        self.selected = None
        self.clear_validation()

    def select(self, index: int) -> AddressOption:
        options = self.options
        if not 0 <= index < len(options):
            raise IndexError(f"address option {index} out of range (0..{len(options) - 1})")
        self.selected = options[index]
        return self.selected

    def clear_validation(self) -> None:
        self.validity = Validity.UNVALIDATED
        self.reason = None
        self.warning = None

    def mark_valid(self) -> None:
        self.validity = Validity.VALID
        self.reason = None
        self.warning = None

    def mark_invalid(self, reason: Reason, display: bool = True) -> None:
        self.validity = Validity.INVALID
        self.reason = reason
        self.warning = reason if display else None


@dataclass
class DirectoryState:
    """Address/certificate resolution state shared by primary and proxy flows."""

    jurisdiction: Jurisdiction = Jurisdiction.STANDARD
    directory_reachable: bool = True
    directory_errored: bool = False
    selected_certificate_id: str | None = None
    selector: AddressSelector = field(default_factory=AddressSelector)

    @property
    def needs_manual_entry(self) -> bool:
        return (
            self.jurisdiction is Jurisdiction.SCOTLAND
            or not self.directory_reachable
            or self.directory_errored
        )

    def reset_directory(self) -> None:
        self.jurisdiction = Jurisdiction.STANDARD
        self.directory_reachable = True
        self.directory_errored = False
        self.selected_certificate_id = None
        self.selector.populate([], listed=False)


@dataclass
class ResolutionContext(DirectoryState):
    proxy: ProxyContext | None = None

    def reset(self) -> None:
        self.reset_directory()
        self.proxy = None


class DirectoryCondition(Condition):
    """Fetch the address list for a Standard-jurisdiction postcode."""

    def __init__(self, session: FormSession, neighbour: bool = False):
        self._session = session
        self._neighbour = neighbour

    async def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        session = self._session
        state = session.directory_state(self._neighbour)
        if state.jurisdiction is Jurisdiction.SCOTLAND:
            return SUCCESS
        if session.loading and not self._neighbour:
            return SUCCESS

        try:
            rows = await session.registry.address_certificates(value)
        except RegistryConnectionError:
            attempt.ensure_current()
            state.directory_reachable = False
            session.notices.add(
                Notice.NEIGHBOUR_DIRECTORY_UNREACHABLE if self._neighbour else Notice.DIRECTORY_UNREACHABLE
            )
            return SUCCESS
        except RegistryServiceError as exc:
            attempt.ensure_current()
            state.directory_errored = True
            session.notices.add(
                Notice.NEIGHBOUR_DIRECTORY_ERROR if self._neighbour else Notice.DIRECTORY_ERROR
            )
            logger.warning("EPC directory error: %s", exc.message)
            return SUCCESS
        attempt.ensure_current()

        state.selector.populate(build_entries(rows))
        logger.info("%d address(es) listed", len(rows))
        return SUCCESS


class ManualEntryFallbackCondition(Condition):
    """Last link of the primary chain: unlock manual entry when the directory cannot help."""

    def __init__(self, session: FormSession):
        self._session = session

    def evaluate(self, value: str, attempt: Attempt) -> Outcome:
        if self._session.context.needs_manual_entry or self._session.loading:
            self._session.unlock_manual_entry(CERTIFICATE_FIELDS)
        return SUCCESS


def epc_register_url(
    state: DirectoryState | None,
    postcode: FieldState,
    allow_scotland: bool = True,
) -> str:
    """Most specific public EPC register page for the current resolution."""
    if state is not None and allow_scotland and state.jurisdiction is Jurisdiction.SCOTLAND:
        return EPC_SCOTLAND_URL
    if state is not None and state.selected_certificate_id:
        return EPC_CERTIFICATE_URL + state.selected_certificate_id
    if postcode.is_valid:
        return EPC_POSTCODE_SEARCH_URL + postcode.raw_value
    return EPC_FINDER_URL
