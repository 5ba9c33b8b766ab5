"""
Database models for the Complaint Box API.

Students, faculty and admins live in three separate tables that share one
column layout through ``IdentityMixin``. Email uniqueness across all three is
enforced by the ``identity_emails`` table, whose primary key is the email.
"""
from typing import ClassVar, Dict, Any
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, Index, TypeDecorator
)
from sqlalchemy.orm import declarative_base, declared_attr, deferred, relationship
import enum

from auth.security import get_password_hash, verify_password
from core.utils import new_identity_id, utcnow

Base = declarative_base()


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        if isinstance(value, str):
            try:
                return self.enum_class(value)
            except ValueError:
                return value
        return value


# ============================================================================
# Enums
# ============================================================================

class UserRole(str, enum.Enum):
    """Identity variants. The set is closed."""
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class ComplaintStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


# ============================================================================
# Identity models
# ============================================================================

class IdentityMixin:
    """Columns and behaviour shared by every identity variant."""

    ROLE: ClassVar[UserRole]

    # Fields that may be serialized for clients; the credential is never listed
    PUBLIC_FIELDS: ClassVar[tuple] = (
        "id", "name", "username", "email", "profile_picture", "phone_number",
        "email_alerts", "system_messages", "created_by",
    )

    id = Column(String(32), primary_key=True, default=new_identity_id)
    name = Column(String(255), nullable=False)
    username = Column(String(100), nullable=False, unique=True, index=True)  # Lowercased, unique per variant
    email = Column(String(255), nullable=False, unique=True, index=True)  # Lowercased, unique across variants
    profile_picture = Column(String(500), nullable=True)
    phone_number = Column(String(50), nullable=True)
    email_alerts = Column(Boolean, default=True, nullable=False)
    system_messages = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(100), default="system", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @declared_attr
    def hashed_password(cls):
        # Deferred: only loaded when a login flow asks for it
        return deferred(Column(String(255), nullable=False))

    @property
    def role(self) -> UserRole:
        return self.ROLE

    @property
    def password(self):
        raise AttributeError("password is write-only")

    @password.setter
    def password(self, plaintext: str):
        """Hash and store a new credential; no-op if it matches the current one."""
        current = self.hashed_password
        if current and verify_password(plaintext, current):
            return
        self.hashed_password = get_password_hash(plaintext)

    def to_dict(self) -> Dict[str, Any]:
        data = {field: getattr(self, field) for field in self.PUBLIC_FIELDS}
        data["role"] = self.role.value
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def __repr__(self):
        return f"<{type(self).__name__} {self.username} ({self.id})>"


class Student(IdentityMixin, Base):
    """Student identity. Owns complaints."""
    __tablename__ = "students"

    ROLE = UserRole.STUDENT
    PUBLIC_FIELDS = IdentityMixin.PUBLIC_FIELDS + (
        "department", "section", "program", "year_of_study", "student_id", "roll_number",
    )

    department = Column(String(255), nullable=True)
    section = Column(String(50), nullable=True)
    program = Column(String(255), nullable=True)
    year_of_study = Column(String(50), nullable=True)
    student_id = Column(String(100), nullable=True, unique=True)  # College-issued ID (optional)
    roll_number = Column(String(100), nullable=True, unique=True)

    complaints = relationship(
        "Complaint",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Faculty(IdentityMixin, Base):
    """Faculty identity. Complaints get assigned to faculty."""
    __tablename__ = "faculty"

    ROLE = UserRole.FACULTY
    PUBLIC_FIELDS = IdentityMixin.PUBLIC_FIELDS + ("department", "section", "program")

    department = Column(String(255), nullable=True)
    section = Column(String(50), nullable=True)
    program = Column(String(255), nullable=True)

    assigned_complaints = relationship("Complaint", back_populates="assigned_faculty")


class Admin(IdentityMixin, Base):
    """Admin identity. Created out of band (scripts/create_admin.py)."""
    __tablename__ = "admins"

    ROLE = UserRole.ADMIN


IDENTITY_MODELS = {
    UserRole.STUDENT: Student,
    UserRole.FACULTY: Faculty,
    UserRole.ADMIN: Admin,
}


class IdentityEmail(Base):
    """Global email index spanning every identity table."""
    __tablename__ = "identity_emails"

    email = Column(String(255), primary_key=True)
    role = Column(EnumValue(UserRole), nullable=False)
    identity_id = Column(String(32), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ============================================================================
# Verification models
# ============================================================================

class VerificationCode(Base):
    """One-time admin login code. At most one live row per email."""
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    code = Column(String(10), nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_verification_code_expires', 'expires_at'),
    )


class AdminLoginTicket(Base):
    """Single-use proof that an admin passed code verification."""
    __tablename__ = "admin_login_tickets"

    jti = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_admin_ticket_expires', 'expires_at'),
    )


# ============================================================================
# Complaints (persistence owned elsewhere; kept here for ownership cascades)
# ============================================================================

class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(EnumValue(ComplaintStatus), default=ComplaintStatus.PENDING, nullable=False)
    student_id = Column(String(32), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_faculty_id = Column(String(32), ForeignKey("faculty.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    student = relationship("Student", back_populates="complaints")
    assigned_faculty = relationship("Faculty", back_populates="assigned_complaints")
