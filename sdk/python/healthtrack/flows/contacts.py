from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from ..exceptions import ErrorKind, StorageError
from ..session import SessionStore
from ..types.profile import EmergencyContact
from .results import FlowResult

logger = logging.getLogger(__name__)

SAVE_FAILED = "Failed to save emergency contacts to the cloud. Please try again later."

_EDITABLE = frozenset({"name", "relationship", "country_code", "phone"})


def _timestamp_id() -> str:
    return str(int(time.time() * 1000))


def _country_code(value: str) -> str:
    value = value.strip()
    return value if value.startswith("+") else f"+{value}"


class EmergencyContactBook:
    """The signed-in user's emergency contacts.

    Every change is applied to the session profile first and then written to
    the ``emergencyContacts`` field of the profile document. At most one
    contact is the default, and a non-empty book always has one.
    """

    def __init__(self, session: SessionStore, id_factory: Callable[[], str] = _timestamp_id) -> None:
        self._session = session
        self._id_factory = id_factory

    @property
    def contacts(self) -> list[EmergencyContact]:
        return list(self._session.profile.emergency_contacts)

    @property
    def default(self) -> Optional[EmergencyContact]:
        return next((c for c in self.contacts if c.is_default), None)

    def _find(self, contact_id: str) -> Optional[EmergencyContact]:
        return next((c for c in self.contacts if c.id == contact_id), None)

    async def _save(self, contacts: list[EmergencyContact], message: Optional[str] = None) -> FlowResult:
        result = FlowResult(message=message)
        try:
            await self._session.update_profile(emergency_contacts=contacts)
            logger.info("saved %d emergency contacts", len(contacts))
        except StorageError as e:
            logger.error("error saving emergency contacts: %s", e)
            result.warning = e.kind
            result.message = SAVE_FAILED
        return result

    async def add(self, name: str, relationship: str, country_code: str, phone: str,
                  is_default: bool = False) -> FlowResult:
        fields = {"name": name, "relationship": relationship, "country_code": country_code, "phone": phone}
        if not all((value or "").strip() for value in fields.values()):
            return FlowResult.invalid({k: "Required" for k, v in fields.items() if not (v or "").strip()},
                                      message="Please fill in all fields")
        contacts = self.contacts
        code = _country_code(country_code)
        contact = EmergencyContact(
            id=self._id_factory(),
            name=name.strip(),
            relationship=relationship.strip(),
            country_code=code,
            phone=phone.strip(),
            is_default=is_default or not contacts,
            phoneDisplay=f"{code} {phone.strip()}",
        )
        if contact.is_default:
            contacts = [c.model_copy(update={"is_default": False}) for c in contacts]
        return await self._save([*contacts, contact])

    async def edit(self, contact_id: str, **changes: Any) -> FlowResult:
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise ValueError(f"not editable: {sorted(unknown)}")
        if self._find(contact_id) is None:
            return FlowResult.failed(ErrorKind.INVALID_INPUT, "Contact not found")
        if any(not str(value).strip() for value in changes.values()):
            return FlowResult.invalid({k: "Required" for k, v in changes.items() if not str(v).strip()},
                                      message="Please fill in all fields")
        if "country_code" in changes:
            changes["country_code"] = _country_code(changes["country_code"])
        contacts = []
        for contact in self.contacts:
            if contact.id == contact_id:
                contact = contact.model_copy(update=changes)
                code = changes.get("country_code", contact.country_code)
                contact = EmergencyContact.model_validate(
                    {**contact.model_dump(by_alias=True), "phoneDisplay": f"{code} {contact.phone}"},
                )
            contacts.append(contact)
        return await self._save(contacts)

    async def delete(self, contact_id: str) -> FlowResult:
        if self._find(contact_id) is None:
            return FlowResult.failed(ErrorKind.INVALID_INPUT, "Contact not found")
        contacts = [c for c in self.contacts if c.id != contact_id]
        if contacts and not any(c.is_default for c in contacts):
            contacts[0] = contacts[0].model_copy(update={"is_default": True})
        return await self._save(contacts)

    async def set_default(self, contact_id: str) -> FlowResult:
        if self._find(contact_id) is None:
            return FlowResult.failed(ErrorKind.INVALID_INPUT, "Contact not found")
        contacts = [c.model_copy(update={"is_default": c.id == contact_id}) for c in self.contacts]
        return await self._save(contacts)
