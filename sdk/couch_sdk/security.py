"""
Database security objects for the CouchDB SDK.

This module provides:
- SecurityGroup: names and roles of one group
- DefaultSecurity: admins and members of a database
- DatabaseSecurity: fetch-modify-store helpers bound to a Database

Invariants:
    - A name or role appears at most once per group
    - Removing an absent entry is a no-op
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, List

from pydantic import BaseModel, Field

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .database import Database


def _update(values: List[str], value: str, delete: bool, label: str) -> None:
    if value in values:
        if delete:
            values.remove(value)
            return
        raise ConfigurationError(f"{label} '{value}' already exists")
    if not delete:
        values.append(value)


class SecurityGroup(BaseModel):
    """Names and roles granted one level of access."""

    names: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)


class DefaultSecurity(BaseModel):
    """Security object of a database.

    Attributes:
        admins: Database administrators
        members: Database readers
    """

    admins: SecurityGroup = Field(default_factory=SecurityGroup)
    members: SecurityGroup = Field(default_factory=SecurityGroup)

    def update_admins(self, login: str, delete: bool = False) -> None:
        """Add or remove an admin name."""
        _update(self.admins.names, login, delete, "Login")

    def update_members(self, login: str, delete: bool = False) -> None:
        """Add or remove a member name."""
        _update(self.members.names, login, delete, "Login")

    def update_admin_roles(self, role: str, delete: bool = False) -> None:
        """Add or remove an admin role."""
        _update(self.admins.roles, role, delete, "Role")

    def update_member_roles(self, role: str, delete: bool = False) -> None:
        """Add or remove a member role."""
        _update(self.members.roles, role, delete, "Role")

    def to_wire(self) -> dict[str, Any]:
        """Body for PUT /{db}/_security; empty lists are left out."""
        return {
            group: {k: v for k, v in values.items() if v}
            for group, values in self.model_dump().items()
        }


class DatabaseSecurity:
    """Security helpers bound to one database.

    Every call fetches the current security object, applies one change
    and stores it back.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.security = DefaultSecurity()

    async def _apply(self, change: Callable[[DefaultSecurity], None]) -> None:
        security = await self.db.get_security()
        change(security)
        await self.db.set_security(security)
        self.security = security

    async def add_admin(self, login: str) -> None:
        await self._apply(lambda s: s.update_admins(login))

    async def delete_admin(self, login: str) -> None:
        await self._apply(lambda s: s.update_admins(login, delete=True))

    async def add_admin_role(self, role: str) -> None:
        await self._apply(lambda s: s.update_admin_roles(role))

    async def delete_admin_role(self, role: str) -> None:
        await self._apply(lambda s: s.update_admin_roles(role, delete=True))

    async def add_member(self, login: str) -> None:
        await self._apply(lambda s: s.update_members(login))

    async def delete_member(self, login: str) -> None:
        await self._apply(lambda s: s.update_members(login, delete=True))

    async def add_member_role(self, role: str) -> None:
        await self._apply(lambda s: s.update_member_roles(role))

    async def delete_member_role(self, role: str) -> None:
        await self._apply(lambda s: s.update_member_roles(role, delete=True))
