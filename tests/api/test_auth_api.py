import pytest
import uuid
from datetime import timedelta

from classlens.backend.api.auth import create_access_token, INVALID_CREDENTIALS
from classlens.backend.config.config import settings


@pytest.mark.asyncio
class TestLogin:

    async def test_teacher_login_is_case_insensitive_on_username(self, http_client, session_redis_client):
        response = await http_client.post("/api/v1/auth/login", json={
            "username": settings.TEACHER_USERNAME.upper(), "password": settings.TEACHER_PASSWORD, "role": "teacher"
        })

        assert response.status_code == 200
        body = response.json()
        assert body["session"]["role"] == "teacher"
        assert body["token"]["token_type"] == "bearer"
        session_redis_client.save_user_session.assert_awaited_once()

    async def test_teacher_wrong_password(self, http_client):
        response = await http_client.post("/api/v1/auth/login", json={
            "username": settings.TEACHER_USERNAME, "password": "nope", "role": "teacher"
        })
        assert response.status_code == 401
        assert response.json()["detail"] == INVALID_CREDENTIALS

    async def test_student_login_pins_student_and_classroom(self, http_client, classroom_with_students):
        bob = classroom_with_students.find_student_by_name("Bob")

        response = await http_client.post("/api/v1/auth/login", json={"username": " 2 ", "password": "secret", "role": "student"})

        assert response.status_code == 200
        session = response.json()["session"]
        assert session["role"] == "student"
        assert session["student_id"] == str(bob.id)
        assert session["classroom_id"] == str(classroom_with_students.id)

    async def test_student_wrong_password(self, http_client, classroom_with_students):
        response = await http_client.post("/api/v1/auth/login", json={"username": "2", "password": "wrong", "role": "student"})
        assert response.status_code == 401

    async def test_missing_role(self, http_client):
        response = await http_client.post("/api/v1/auth/login", json={"username": "teacher", "password": "x"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Please select your role."

    async def test_missing_password(self, http_client):
        response = await http_client.post("/api/v1/auth/login", json={"username": "2", "role": "student"})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestSessions:

    async def test_me_and_logout(self, http_client, teacher_headers):
        me = await http_client.get("/api/v1/auth/me", headers=teacher_headers)
        assert me.status_code == 200
        assert me.json()["role"] == "teacher"

        logout = await http_client.post("/api/v1/auth/logout", headers=teacher_headers)
        assert logout.status_code == 204

        after = await http_client.get("/api/v1/auth/me", headers=teacher_headers)
        assert after.status_code == 401

    async def test_missing_token(self, http_client):
        response = await http_client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_garbage_token(self, http_client):
        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_token_for_unknown_session(self, http_client):
        token = create_access_token({"session_id": str(uuid.uuid4())}, timedelta(minutes=5))
        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_expired_token(self, http_client):
        token = create_access_token({"session_id": str(uuid.uuid4())}, timedelta(minutes=-5))
        response = await http_client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_student_cannot_use_teacher_endpoints(self, http_client, classroom_with_students, login_as):
        headers = await login_as("1", "secret", "student")
        response = await http_client.get("/api/v1/teacher/classrooms", headers=headers)
        assert response.status_code == 403

    async def test_teacher_cannot_use_student_endpoints(self, http_client, teacher_headers):
        response = await http_client.get("/api/v1/student/me", headers=teacher_headers)
        assert response.status_code == 403
