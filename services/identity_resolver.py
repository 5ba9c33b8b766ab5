"""
Identity resolver: the single place that looks across the student, faculty
and admin tables.

Lookups without a role hint search Student, then Faculty, then Admin and stop
at the first match. With a hint only that variant is consulted.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from core.exceptions import (
    AuthError, DuplicateError, IdentityNotFoundError, UnsupportedRoleError, ValidationError
)
from core.logger import logger
from core.validators import normalize_email, validate_password
from database.models import IDENTITY_MODELS, IdentityMixin, UserRole
from services.credential_store import CredentialStore

RoleLike = Union[UserRole, str]

# Student lookups are the most frequent; keep this order stable
SEARCH_ORDER = (UserRole.STUDENT, UserRole.FACULTY, UserRole.ADMIN)


@dataclass(frozen=True)
class ResolvedIdentity:
    """An identity tagged with the variant it was found in."""
    identity: IdentityMixin
    role: UserRole

    @property
    def id(self) -> str:
        return self.identity.id

    def to_dict(self) -> Dict[str, Any]:
        return self.identity.to_dict()


def coerce_role(role: RoleLike) -> UserRole:
    """Map a role name to UserRole, rejecting anything outside the closed set."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).strip().lower())
    except ValueError:
        raise UnsupportedRoleError(role)


class IdentityResolver:
    """Dispatches identity operations to the per-variant credential stores."""

    def __init__(self, stores: Optional[Dict[UserRole, CredentialStore]] = None):
        self.stores = stores or {
            role: CredentialStore(model) for role, model in IDENTITY_MODELS.items()
        }

    def store_for(self, role: RoleLike) -> CredentialStore:
        return self.stores[coerce_role(role)]

    def _search_roles(self, role_hint: Optional[RoleLike]) -> Tuple[UserRole, ...]:
        if role_hint is None:
            return SEARCH_ORDER
        return (coerce_role(role_hint),)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve_for_login(
        self,
        db: Session,
        username_or_email: str,
        role_hint: Optional[RoleLike] = None,
        roles: Tuple[UserRole, ...] = SEARCH_ORDER,
    ) -> Optional[ResolvedIdentity]:
        """
        Find the identity a login attempt refers to, credential included.

        ``roles`` bounds the variants consulted; a hint outside it finds nothing.
        """
        for role in self._search_roles(role_hint):
            if role not in roles:
                continue
            identity = self.stores[role].find_by_username_or_email(
                db, username_or_email, include_credential=True
            )
            if identity is not None:
                return ResolvedIdentity(identity, role)
        return None

    def resolve_by_id(
        self,
        db: Session,
        identity_id: str,
        role_hint: Optional[RoleLike] = None,
        include_credential: bool = False,
    ) -> Optional[ResolvedIdentity]:
        for role in self._search_roles(role_hint):
            identity = self.stores[role].find_by_id(db, identity_id, include_credential=include_credential)
            if identity is not None:
                return ResolvedIdentity(identity, role)
        return None

    def resolve_by_email(
        self,
        db: Session,
        email: str,
        role_hint: Optional[RoleLike] = None,
        include_credential: bool = False,
    ) -> Optional[ResolvedIdentity]:
        for role in self._search_roles(role_hint):
            identity = self.stores[role].find_by_email(db, email, include_credential=include_credential)
            if identity is not None:
                return ResolvedIdentity(identity, role)
        return None

    def exists_username_or_email(self, db: Session, username: str, email: str) -> Tuple[bool, bool]:
        """
        Report whether ``username`` and ``email`` are taken in any variant.

        Returns:
            Tuple of (username_exists, email_exists)
        """
        username_exists = False
        email_exists = False
        for role in SEARCH_ORDER:
            store = self.stores[role]
            if not username_exists and store.find_by_username(db, username) is not None:
                username_exists = True
            if not email_exists and store.find_by_email(db, email) is not None:
                email_exists = True
        return username_exists, email_exists

    def list_identities(
        self,
        db: Session,
        role: Optional[RoleLike] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[ResolvedIdentity], int]:
        """
        Page through identities, newest first.

        With a role only that variant is paged at the database; without one
        all three are merged and sorted by creation time before slicing.
        """
        page = max(page, 1)
        offset = (page - 1) * limit

        if role is not None:
            role = coerce_role(role)
            store = self.stores[role]
            items = store.list(db, offset=offset, limit=limit)
            return [ResolvedIdentity(identity, role) for identity in items], store.count(db)

        merged = [
            ResolvedIdentity(identity, r)
            for r in SEARCH_ORDER
            for identity in self.stores[r].list(db)
        ]
        merged.sort(key=lambda resolved: resolved.identity.created_at, reverse=True)
        return merged[offset:offset + limit], len(merged)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_in_variant(self, db: Session, role: RoleLike, data: Dict[str, Any]) -> ResolvedIdentity:
        """
        Create an identity in the variant named by ``role``.

        Usernames are unique per variant, emails across all variants. Both are
        pre-checked here; the storage constraints catch anything that races past.
        """
        role = coerce_role(role)
        store = self.stores[role]

        _, email_exists = self.exists_username_or_email(db, data.get("username"), data.get("email"))
        if email_exists:
            raise DuplicateError("Email already registered", field="email")
        if store.find_by_username(db, data.get("username")) is not None:
            raise DuplicateError("Username already exists", field="username")

        identity = store.create(db, {**data, "role": role})
        return ResolvedIdentity(identity, role)

    def update_identity(self, db: Session, identity_id: str, patch: Dict[str, Any]) -> ResolvedIdentity:
        """Update profile fields; the identity stays in its variant."""
        if "role" in patch:
            raise ValidationError("Changing role via profile update is not supported", field="role")

        resolved = self.resolve_by_id(db, identity_id)
        if resolved is None:
            raise IdentityNotFoundError()

        if patch.get("email") is not None:
            new_email = normalize_email(patch["email"])
            owner = self.resolve_by_email(db, new_email)
            if owner is not None and owner.id != resolved.id:
                raise DuplicateError("Email already registered", field="email")

        identity = self.stores[resolved.role].update(db, identity_id, patch)
        return ResolvedIdentity(identity, resolved.role)

    def change_credential(
        self,
        db: Session,
        identity_id: str,
        role: RoleLike,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace the credential after checking the current one."""
        resolved = self.resolve_by_id(db, identity_id, role_hint=role, include_credential=True)
        if resolved is None:
            raise IdentityNotFoundError()

        store = self.stores[resolved.role]
        if not store.verify_credential(resolved.identity, current_password):
            raise AuthError("Current password is incorrect", code="WRONG_PASSWORD")

        is_valid, error_message = validate_password(new_password)
        if not is_valid:
            raise ValidationError(error_message, field="newPassword")

        store.update(db, identity_id, {"password": new_password})
        logger.info(f"Password changed for {resolved.role.value} {identity_id}")

    def delete_identity(self, db: Session, identity_id: str) -> ResolvedIdentity:
        """Delete an identity wherever it lives. Deleting a student removes their complaints."""
        resolved = self.resolve_by_id(db, identity_id)
        if resolved is None:
            raise IdentityNotFoundError()
        self.stores[resolved.role].delete(db, identity_id)
        return resolved


# Shared resolver used by routes and dependencies
identity_resolver = IdentityResolver()
