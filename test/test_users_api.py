"""
Tests for the /api/users endpoints
"""
import pytest
from httpx import AsyncClient

from database.models import UserRole
from conftest import bearer


class TestListUsers:

    @pytest.mark.asyncio
    async def test_student_forbidden(self, client: AsyncClient, student):
        response = await client.get('/api/users', headers=bearer(student))
        assert response.status_code == 403
        assert response.json()['code'] == 'FORBIDDEN'

    @pytest.mark.asyncio
    async def test_faculty_lists_everyone(self, client: AsyncClient, student, faculty, admin):
        response = await client.get('/api/users', headers=bearer(faculty))

        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 3
        assert {user['role'] for user in data['data']} == {'student', 'faculty', 'admin'}
        assert all('hashed_password' not in user for user in data['data'])

    @pytest.mark.asyncio
    async def test_filter_and_paginate(self, client: AsyncClient, make_identity, admin):
        for _ in range(3):
            make_identity(UserRole.STUDENT)

        response = await client.get(
            '/api/users', params={'role': 'student', 'page': 2, 'limit': 2}, headers=bearer(admin)
        )

        assert response.status_code == 200
        data = response.json()
        assert data['total'] == 3
        assert len(data['data']) == 1
        assert data['data'][0]['role'] == 'student'

    @pytest.mark.asyncio
    async def test_bad_role_filter(self, client: AsyncClient, admin):
        response = await client.get('/api/users', params={'role': 'janitor'}, headers=bearer(admin))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_token(self, client: AsyncClient):
        response = await client.get('/api/users')
        assert response.status_code == 401


class TestGetUser:

    @pytest.mark.asyncio
    async def test_student_sees_self(self, client: AsyncClient, student):
        response = await client.get(f'/api/users/{student.id}', headers=bearer(student))
        assert response.status_code == 200
        assert response.json()['user']['id'] == student.id

    @pytest.mark.asyncio
    async def test_student_cannot_see_others(self, client: AsyncClient, student, faculty):
        response = await client.get(f'/api/users/{faculty.id}', headers=bearer(student))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_faculty_sees_student(self, client: AsyncClient, student, faculty):
        response = await client.get(f'/api/users/{student.id}', headers=bearer(faculty))
        assert response.status_code == 200
        assert response.json()['user']['role'] == 'student'

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, admin):
        response = await client.get('/api/users/does-not-exist', headers=bearer(admin))
        assert response.status_code == 404


class TestDeleteUser:

    @pytest.mark.asyncio
    async def test_faculty_cannot_delete_others(self, client: AsyncClient, student, faculty):
        response = await client.delete(f'/api/users/{student.id}', headers=bearer(faculty))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_deletes_student(self, client: AsyncClient, student, admin):
        student_headers = bearer(student)

        response = await client.delete(f'/api/users/{student.id}', headers=bearer(admin))
        assert response.status_code == 200
        assert response.json()['role'] == 'student'

        # The deleted student's token no longer resolves
        response = await client.get('/api/auth/me', headers=student_headers)
        assert response.status_code == 401
        assert response.json()['error'] == 'User not found'

    @pytest.mark.asyncio
    async def test_user_deletes_self(self, client: AsyncClient, faculty):
        response = await client.delete(f'/api/users/{faculty.id}', headers=bearer(faculty))
        assert response.status_code == 200


class TestUpdateUser:

    @pytest.mark.asyncio
    async def test_faculty_updates_student(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(faculty), json={
            'name': 'Renamed Student', 'section': 'C', 'rollNumber': 'CS-42'
        })

        assert response.status_code == 200
        user = response.json()['user']
        assert user['id'] == student.id
        assert user['role'] == 'student'
        assert user['name'] == 'Renamed Student'
        assert user['section'] == 'C'
        assert user['roll_number'] == 'CS-42'

    @pytest.mark.asyncio
    async def test_student_forbidden(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{faculty.id}', headers=bearer(student), json={'name': 'x'})
        assert response.status_code == 403
        assert response.json()['code'] == 'FORBIDDEN'

    @pytest.mark.asyncio
    async def test_admin_forbidden(self, client: AsyncClient, student, admin):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(admin), json={'name': 'x'})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_role_change_rejected(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(faculty), json={'role': 'faculty'})

        assert response.status_code == 400
        assert response.json()['details'] == {'field': 'role'}

        check = await client.get(f'/api/users/{student.id}', headers=bearer(faculty))
        assert check.json()['user']['role'] == 'student'

    @pytest.mark.asyncio
    async def test_password_rejected(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(faculty), json={
            'password': 'takeover12345'
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, faculty):
        response = await client.put('/api/users/does-not-exist', headers=bearer(faculty), json={'name': 'x'})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(faculty), json={'name': '   '})
        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_email_taken(self, client: AsyncClient, student, faculty):
        response = await client.put(f'/api/users/{student.id}', headers=bearer(faculty), json={
            'email': faculty.identity.email
        })
        assert response.status_code == 400
        assert response.json()['code'] == 'DUPLICATE'
