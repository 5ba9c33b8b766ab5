"""
Three-step admin login.

1. request_code: an admin email receives a one-time code.
2. verify_code: the code is checked and exchanged for a single-use ticket.
3. login: email + password + ticket produce an access token.

There is no session object between the steps. Progress is carried by the
ledger row (step 1 to 2) and by the ticket row (step 2 to 3).
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from auth.security import create_access_token, create_admin_ticket, decode_admin_ticket
from core.exceptions import AdminNotFoundError, AdminVerificationRequiredError, AuthError
from core.logger import logger
from core.utils import utcnow
from core.validators import normalize_email
from database.models import AdminLoginTicket, UserRole
from services.code_ledger import CodeLedger
from services.email_service import EmailService
from services.identity_resolver import IdentityResolver, ResolvedIdentity, identity_resolver
import config


class AdminVerificationService:
    """Drives the admin code/ticket/password sequence."""

    def __init__(
        self,
        resolver: Optional[IdentityResolver] = None,
        ledger: Optional[CodeLedger] = None,
        requires_ticket: Optional[bool] = None,
    ):
        self.resolver = resolver or identity_resolver
        self.ledger = ledger or CodeLedger()
        self.requires_ticket = (
            config.ADMIN_LOGIN_REQUIRES_TICKET if requires_ticket is None else requires_ticket
        )

    # Step 1
    def request_code(self, db: Session, email: str, notifications=None) -> str:
        """
        Issue a code for an admin email and hand the email to the delivery queue.

        Returns:
            The issued code (never sent back to clients)

        Raises:
            AdminNotFoundError: No admin has this email
        """
        email = normalize_email(email)
        resolved = self.resolver.resolve_by_email(db, email, role_hint=UserRole.ADMIN)
        if resolved is None:
            logger.info(f"Verification code requested for unknown admin email {email}")
            raise AdminNotFoundError()

        code = self.ledger.issue(db, email)

        if notifications is None:
            logger.warning(f"Mail delivery not configured; verification code for {email} was not sent")
        else:
            notifications.enqueue(
                EmailService.verification_code_message(resolved.identity.email, code),
                description=f"admin verification code to {email}",
            )
        return code

    # Step 2
    def verify_code(self, db: Session, email: str, code: str) -> Dict[str, Any]:
        """
        Consume the code and mint a single-use login ticket bound to ``email``.

        Raises:
            CodeNotFoundError, CodeExpiredError, CodeMismatchError: From the ledger
        """
        email = normalize_email(email)
        self.ledger.verify(db, email, code)

        ticket = create_admin_ticket(email)
        db.add(AdminLoginTicket(jti=ticket["jti"], email=email, expires_at=ticket["expires_at"]))
        db.commit()
        return ticket

    # Step 3
    def login(
        self,
        db: Session,
        email: str,
        password: str,
        ticket: Optional[str] = None,
    ) -> Tuple[ResolvedIdentity, str]:
        """
        Check the admin password and issue an access token.

        Raises:
            AdminVerificationRequiredError: Ticket missing, invalid, expired or used
            AuthError: Unknown admin or wrong password (same message for both)
        """
        email = normalize_email(email)

        jti = self._check_ticket(db, email, ticket) if self.requires_ticket else None

        resolved = self.resolver.resolve_by_email(
            db, email, role_hint=UserRole.ADMIN, include_credential=True
        )
        store = self.resolver.store_for(UserRole.ADMIN)
        if resolved is None or not store.verify_credential(resolved.identity, password):
            logger.warning(f"Failed admin login for {email}")
            raise AuthError()

        if jti is not None:
            self._consume_ticket(db, email, jti)

        token = create_access_token(resolved.id, UserRole.ADMIN.value)
        logger.info(f"Admin logged in: {resolved.identity.username} ({resolved.id})")
        return resolved, token

    def _check_ticket(self, db: Session, email: str, ticket: Optional[str]) -> str:
        if not ticket:
            raise AdminVerificationRequiredError()
        payload = decode_admin_ticket(ticket)
        if payload is None or normalize_email(payload.get("sub")) != email:
            raise AdminVerificationRequiredError("Verification ticket is invalid or expired")
        outstanding = db.query(AdminLoginTicket).filter(
            AdminLoginTicket.jti == payload["jti"],
            AdminLoginTicket.email == email,
        ).first()
        if outstanding is None:
            raise AdminVerificationRequiredError("Verification ticket has already been used")
        return payload["jti"]

    def _consume_ticket(self, db: Session, email: str, jti: str):
        removed = db.query(AdminLoginTicket).filter(
            AdminLoginTicket.jti == jti,
            AdminLoginTicket.email == email,
        ).delete()
        db.commit()
        if not removed:
            raise AdminVerificationRequiredError("Verification ticket has already been used")

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        """Remove expired codes and tickets."""
        now = now or utcnow()
        removed = self.ledger.purge_expired(db, now)
        tickets = db.query(AdminLoginTicket).filter(AdminLoginTicket.expires_at < now).delete()
        db.commit()
        return removed + tickets


admin_verification = AdminVerificationService()
