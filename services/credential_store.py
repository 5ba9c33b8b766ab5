"""
Credential store: persistence and secret checks for a single identity variant.
"""
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, undefer

from auth.security import verify_password
from core.exceptions import DuplicateError, IdentityNotFoundError, ValidationError
from core.logger import logger
from core.utils import new_identity_id
from core.validators import normalize_email, normalize_username, validate_password
from database.models import IdentityEmail, IdentityMixin


class CredentialStore:
    """
    Store for one identity table (students, faculty or admins).

    One instance exists per variant; the identity resolver is the only caller
    that picks between them.
    """

    # Never writable through create/update payloads
    PROTECTED_FIELDS = {"id", "role", "hashed_password", "created_at", "updated_at"}

    def __init__(self, model: Type[IdentityMixin]):
        self.model = model
        self.role = model.ROLE

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query(self, db: Session, include_credential: bool):
        query = db.query(self.model)
        if include_credential:
            query = query.options(undefer(self.model.hashed_password))
        return query

    def find_by_id(self, db: Session, identity_id: str, include_credential: bool = False):
        if not identity_id:
            return None
        return self._query(db, include_credential).filter(self.model.id == identity_id).first()

    def find_by_username(self, db: Session, username: str, include_credential: bool = False):
        username = normalize_username(username)
        if not username:
            return None
        return self._query(db, include_credential).filter(self.model.username == username).first()

    def find_by_email(self, db: Session, email: str, include_credential: bool = False):
        email = normalize_email(email)
        if not email:
            return None
        return self._query(db, include_credential).filter(self.model.email == email).first()

    def find_by_username_or_email(self, db: Session, key: str, include_credential: bool = False):
        key = (key or "").strip().lower()
        if not key:
            return None
        return self._query(db, include_credential).filter(
            or_(self.model.username == key, self.model.email == key)
        ).first()

    def list(self, db: Session, offset: int = 0, limit: Optional[int] = None) -> List[IdentityMixin]:
        query = db.query(self.model).order_by(self.model.created_at.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, db: Session) -> int:
        return db.query(self.model).count()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _profile_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only columns this variant has, minus protected ones."""
        allowed = set(self.model.PUBLIC_FIELDS) - self.PROTECTED_FIELDS
        unknown = set(data) - allowed
        if unknown:
            raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")
        return dict(data)

    def _duplicate_from(self, error: IntegrityError) -> DuplicateError:
        message = str(error.orig).lower()
        if "roll_number" in message:
            return DuplicateError("Roll number already registered", field="roll_number")
        if "student_id" in message:
            return DuplicateError("Student ID already registered", field="student_id")
        if "username" in message:
            return DuplicateError("Username already exists", field="username")
        if "email" in message:
            return DuplicateError("Email already registered", field="email")
        return DuplicateError("Username or email already exists")

    def create(self, db: Session, data: Dict[str, Any]) -> IdentityMixin:
        """
        Create an identity in this variant.

        The identity row and its global email index row are committed together,
        so a concurrent signup with the same email fails on the index primary key
        even if both passed the resolver's pre-check.

        Args:
            db: Database session
            data: Profile fields plus plaintext ``password``; ``role`` is ignored

        Returns:
            Created identity (credential not loaded)
        """
        data = dict(data)
        data.pop("role", None)
        password = data.pop("password", None)
        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationError(error_message, field="password")

        fields = self._profile_fields(data)
        fields["username"] = normalize_username(fields.get("username"))
        fields["email"] = normalize_email(fields.get("email"))
        if not fields["username"] or not fields["email"] or not (fields.get("name") or "").strip():
            raise ValidationError("Name, username and email are required")
        fields["name"] = fields["name"].strip()

        identity = self.model(id=new_identity_id(), **fields)
        identity.password = password
        db.add(identity)
        db.add(IdentityEmail(email=identity.email, role=self.role, identity_id=identity.id))
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise self._duplicate_from(e)

        db.refresh(identity)
        logger.info(f"Created {self.role.value}: {identity.username} ({identity.id})")
        return identity

    def update(self, db: Session, identity_id: str, patch: Dict[str, Any]) -> IdentityMixin:
        """
        Apply a partial update.

        ``role`` is rejected. ``password`` is re-hashed only if it differs from
        the stored credential. Email changes move the global email index row.
        """
        patch = dict(patch)
        if "role" in patch:
            raise ValidationError(
                "Changing role is not supported via update; recreate the user to change role",
                field="role",
            )
        password = patch.pop("password", None)
        fields = self._profile_fields(patch)

        identity = self.find_by_id(db, identity_id, include_credential=password is not None)
        if identity is None:
            raise IdentityNotFoundError()

        if "name" in fields:
            fields["name"] = (fields["name"] or "").strip()
            if not fields["name"]:
                raise ValidationError("Name cannot be empty", field="name")
        if "username" in fields:
            fields["username"] = normalize_username(fields["username"])
            if not fields["username"]:
                raise ValidationError("Username cannot be empty", field="username")
        if "email" in fields:
            new_email = normalize_email(fields["email"])
            if not new_email:
                raise ValidationError("Email cannot be empty", field="email")
            fields["email"] = new_email
            if new_email != identity.email:
                db.query(IdentityEmail).filter(IdentityEmail.email == identity.email).delete()
                db.add(IdentityEmail(email=new_email, role=self.role, identity_id=identity.id))

        for field, value in fields.items():
            setattr(identity, field, value)

        if password is not None:
            is_valid, error_message = validate_password(password)
            if not is_valid:
                raise ValidationError(error_message, field="password")
            identity.password = password

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise self._duplicate_from(e)

        db.refresh(identity)
        return identity

    def delete(self, db: Session, identity_id: str) -> bool:
        """Delete an identity and its email index row. Student complaints cascade."""
        identity = self.find_by_id(db, identity_id)
        if identity is None:
            return False

        db.query(IdentityEmail).filter(IdentityEmail.email == identity.email).delete()
        db.delete(identity)
        db.commit()
        logger.info(f"Deleted {self.role.value}: {identity_id}")
        return True

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    @staticmethod
    def verify_credential(identity: IdentityMixin, plaintext: str) -> bool:
        """Constant-time check of ``plaintext`` against the stored hash. Never raises on mismatch."""
        if identity is None:
            return False
        return verify_password(plaintext, identity.hashed_password)
