"""
Tests for cross-variant identity resolution
"""
from datetime import datetime, timedelta

import pytest

from core.exceptions import (
    AuthError, DuplicateError, IdentityNotFoundError, UnsupportedRoleError, ValidationError
)
from database.models import Complaint, UserRole
from services.identity_resolver import coerce_role, identity_resolver
from conftest import DEFAULT_PASSWORD


def test_coerce_role():
    assert coerce_role('Faculty') is UserRole.FACULTY
    assert coerce_role(UserRole.ADMIN) is UserRole.ADMIN
    with pytest.raises(UnsupportedRoleError):
        coerce_role('superuser')


class TestResolution:

    def test_same_username_in_two_variants(self, db_session, make_identity):
        student = make_identity(UserRole.STUDENT, username='amy', email='amy.s@example.com')
        faculty = make_identity(UserRole.FACULTY, username='amy', email='amy.f@example.com')

        found = identity_resolver.resolve_for_login(db_session, 'amy')
        assert found.role is UserRole.STUDENT
        assert found.id == student.id

        found = identity_resolver.resolve_for_login(db_session, 'amy', role_hint='faculty')
        assert found.role is UserRole.FACULTY
        assert found.id == faculty.id

    def test_search_order_falls_through(self, db_session, admin):
        found = identity_resolver.resolve_for_login(db_session, admin.identity.username)
        assert found.role is UserRole.ADMIN

    def test_login_by_email(self, db_session, faculty):
        found = identity_resolver.resolve_for_login(db_session, faculty.identity.email.upper())
        assert found.id == faculty.id

    def test_unknown_key(self, db_session, student):
        assert identity_resolver.resolve_for_login(db_session, 'nobody-here') is None

    def test_role_hint_limits_search(self, db_session, student):
        assert identity_resolver.resolve_by_id(db_session, student.id, role_hint=UserRole.FACULTY) is None
        assert identity_resolver.resolve_by_id(db_session, student.id).role is UserRole.STUDENT

    def test_unsupported_hint(self, db_session, student):
        with pytest.raises(UnsupportedRoleError):
            identity_resolver.resolve_by_id(db_session, student.id, role_hint='owner')

    def test_exists_username_or_email(self, db_session, student):
        assert identity_resolver.exists_username_or_email(
            db_session, student.identity.username, 'free@example.com'
        ) == (True, False)
        assert identity_resolver.exists_username_or_email(
            db_session, 'free-name', student.identity.email
        ) == (False, True)


class TestCreate:

    def test_email_unique_across_variants(self, db_session, make_identity):
        make_identity(UserRole.STUDENT, email='bob@example.com')
        with pytest.raises(DuplicateError) as exc_info:
            make_identity(UserRole.FACULTY, email='BOB@example.com')
        assert exc_info.value.details == {'field': 'email'}

    def test_username_unique_within_variant(self, db_session, make_identity):
        make_identity(UserRole.FACULTY, username='carol')
        with pytest.raises(DuplicateError) as exc_info:
            make_identity(UserRole.FACULTY, username='Carol')
        assert exc_info.value.details == {'field': 'username'}

    def test_unsupported_role(self, db_session, make_identity):
        with pytest.raises(UnsupportedRoleError):
            make_identity('superuser')


class TestUpdate:

    def test_role_patch_rejected(self, db_session, student):
        with pytest.raises(ValidationError):
            identity_resolver.update_identity(db_session, student.id, {'role': 'admin'})

    def test_email_taken_in_other_variant(self, db_session, student, faculty):
        with pytest.raises(DuplicateError):
            identity_resolver.update_identity(db_session, student.id, {'email': faculty.identity.email})

    def test_keeping_own_email_is_allowed(self, db_session, student):
        updated = identity_resolver.update_identity(
            db_session, student.id, {'email': student.identity.email, 'name': 'Renamed'}
        )
        assert updated.identity.name == 'Renamed'
        assert updated.role is UserRole.STUDENT

    def test_missing_identity(self, db_session):
        with pytest.raises(IdentityNotFoundError):
            identity_resolver.update_identity(db_session, 'missing', {'name': 'x'})


class TestChangeCredential:

    def test_change_password(self, db_session, faculty):
        identity_resolver.change_credential(
            db_session, faculty.id, faculty.role, DEFAULT_PASSWORD, 'brandnewpass1'
        )
        found = identity_resolver.resolve_for_login(db_session, faculty.identity.username)
        store = identity_resolver.store_for(found.role)
        assert store.verify_credential(found.identity, 'brandnewpass1')

    def test_wrong_current_password(self, db_session, faculty):
        with pytest.raises(AuthError) as exc_info:
            identity_resolver.change_credential(
                db_session, faculty.id, faculty.role, 'not-my-password', 'brandnewpass1'
            )
        assert exc_info.value.code == 'WRONG_PASSWORD'

    def test_new_password_too_short(self, db_session, faculty):
        with pytest.raises(ValidationError):
            identity_resolver.change_credential(
                db_session, faculty.id, faculty.role, DEFAULT_PASSWORD, '123'
            )


class TestListAndDelete:

    def test_list_merges_newest_first(self, db_session, make_identity):
        oldest = make_identity(UserRole.FACULTY)
        middle = make_identity(UserRole.ADMIN)
        newest = make_identity(UserRole.STUDENT)
        base = datetime(2026, 3, 1, 12, 0, 0)
        oldest.identity.created_at = base
        middle.identity.created_at = base + timedelta(hours=1)
        newest.identity.created_at = base + timedelta(hours=2)
        db_session.commit()

        items, total = identity_resolver.list_identities(db_session)
        assert total == 3
        assert [item.id for item in items] == [newest.id, middle.id, oldest.id]

        page, total = identity_resolver.list_identities(db_session, page=2, limit=2)
        assert total == 3
        assert [item.id for item in page] == [oldest.id]

    def test_list_single_variant(self, db_session, student, faculty, admin):
        items, total = identity_resolver.list_identities(db_session, role='faculty')
        assert total == 1
        assert items[0].id == faculty.id
        assert items[0].role is UserRole.FACULTY

    def test_deleting_student_removes_their_complaints(self, db_session, student, faculty):
        db_session.add_all([
            Complaint(title='Broken projector', student_id=student.id, assigned_faculty_id=faculty.id),
            Complaint(title='Library hours', student_id=student.id),
        ])
        db_session.commit()
        student_id = student.id

        deleted = identity_resolver.delete_identity(db_session, student_id)

        assert deleted.role is UserRole.STUDENT
        assert db_session.query(Complaint).filter(Complaint.student_id == student_id).count() == 0
        assert identity_resolver.resolve_by_id(db_session, student_id) is None

    def test_delete_missing(self, db_session):
        with pytest.raises(IdentityNotFoundError):
            identity_resolver.delete_identity(db_session, 'missing')
