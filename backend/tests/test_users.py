import pytest
from fastapi import status, HTTPException
from sqlalchemy.exc import OperationalError
from unittest.mock import patch
from uuid import uuid4

from backend.app.errors import Conflict, NotAuthenticated, UpstreamUnavailable
from backend.app.models.models import AuthPrincipal, AuthToken, ChildMembership, User, UserRole
from backend.app.schemas.users import LoginRequest, PasswordUpdate, RegisterRequest, UserUpdate
from backend.app.services.identity_service import IdentityProvider
from backend.app.services.user_service import (
    get_profile, get_user_by_id, login, logout, register_parent, update_password, update_profile
)
from backend.app.session import SessionContext

from conftest import CHILD_EMAIL, CHILD_PASSWORD, PARENT_EMAIL, PARENT_PASSWORD

# Service layer tests
def test_register_parent_service(db_session):
    """Test parent registration at the service layer"""
    ctx = SessionContext()
    token = register_parent(db_session, ctx, RegisterRequest(
        email="NewParent@example.com", password="secret1", display_name="New Parent"
    ))

    assert token
    assert ctx.token == token
    assert ctx.principal.role == UserRole.PARENT
    assert ctx.principal.parent_id is None

    user = db_session.query(User).filter(User.id == ctx.principal.id).first()
    assert user.email == "newparent@example.com"
    assert user.display_name == "New Parent"
    assert user.role == UserRole.PARENT.value

def test_register_duplicate_email_service(db_session, parent_ctx):
    """Test that registering an existing email raises an error"""
    with pytest.raises(Conflict) as excinfo:
        register_parent(db_session, SessionContext(), RegisterRequest(
            email=PARENT_EMAIL, password="another", display_name="Duplicate"
        ))
    assert "Email already registered" in str(excinfo.value.detail)

def test_password_is_hashed(db_session, parent_ctx):
    principal = db_session.query(AuthPrincipal).filter(AuthPrincipal.id == parent_ctx.principal.id).first()
    assert principal.password_hash != PARENT_PASSWORD

def test_login_service(db_session, child_id):
    """Test that a child logs in with the credentials its parent chose"""
    ctx = SessionContext()
    token = login(db_session, ctx, LoginRequest(email=CHILD_EMAIL, password=CHILD_PASSWORD))

    assert ctx.principal.id == child_id
    assert ctx.principal.role == UserRole.CHILD
    assert ctx.principal.parent_id is not None
    assert db_session.query(AuthToken).filter(AuthToken.token == token).count() == 1

@pytest.mark.parametrize("email,password", [
    (PARENT_EMAIL, "wrongpass"),
    ("nobody@example.com", PARENT_PASSWORD),
])
def test_login_invalid_credentials(db_session, parent_ctx, email, password):
    ctx = SessionContext()
    with pytest.raises(NotAuthenticated) as excinfo:
        login(db_session, ctx, LoginRequest(email=email, password=password))

    assert excinfo.value.status_code == 401
    assert ctx.principal is None

def test_logout_service(db_session, parent_ctx):
    token = parent_ctx.token
    events = []
    parent_ctx.subscribe(events.append)

    logout(db_session, parent_ctx)

    assert parent_ctx.principal is None
    assert parent_ctx.token is None
    assert events == [None]
    assert IdentityProvider(db_session).resolve_token(token) is None

def test_unsubscribe_stops_notifications(parent_ctx):
    events = []
    unsubscribe = parent_ctx.subscribe(events.append)
    unsubscribe()

    parent_ctx.clear()

    assert events == []

def test_get_user_by_id_service(db_session, parent_ctx):
    """Test retrieving a user by ID at the service layer"""
    user = get_user_by_id(db_session, parent_ctx.principal.id)
    assert user.id == parent_ctx.principal.id
    assert user.email == PARENT_EMAIL

def test_get_nonexistent_user_by_id_service(db_session):
    """Test that retrieving a nonexistent user by ID raises an exception"""
    random_id = str(uuid4())

    with pytest.raises(HTTPException) as excinfo:
        get_user_by_id(db_session, random_id)

    assert excinfo.value.status_code == 404
    assert f"User with id {random_id} not found" in str(excinfo.value.detail)

def test_get_profile_requires_session(db_session):
    with pytest.raises(NotAuthenticated):
        get_profile(db_session, SessionContext())

def test_update_profile_service(db_session, parent_ctx):
    """Test updating the display name"""
    updated_user = update_profile(db_session, parent_ctx, UserUpdate(display_name="Updated Name"))

    assert updated_user.display_name == "Updated Name"
    assert updated_user.email == PARENT_EMAIL  # Email should remain unchanged
    assert parent_ctx.principal.display_name == "Updated Name"

def test_child_rename_updates_membership(db_session, child_ctx):
    """The parent's copy of the child's name follows a rename"""
    update_profile(db_session, child_ctx, UserUpdate(display_name="AJ"))

    membership = db_session.query(ChildMembership).filter(
        ChildMembership.child_id == child_ctx.principal.id
    ).first()
    assert membership.display_name == "AJ"

def test_child_rename_commits_once(db_session, child_ctx):
    """Identity, profile and membership names are saved together"""
    with patch.object(db_session, "commit", wraps=db_session.commit) as mock_commit:
        update_profile(db_session, child_ctx, UserUpdate(display_name="AJ"))

    assert mock_commit.call_count == 1
    principal = db_session.query(AuthPrincipal).filter(AuthPrincipal.id == child_ctx.principal.id).first()
    assert principal.display_name == "AJ"

def test_failed_rename_leaves_every_copy_unchanged(db_session, child_ctx):
    """A store failure on save rolls back all three names"""
    child_id = child_ctx.principal.id
    failure = OperationalError("UPDATE", {}, Exception("disk I/O error"))

    with patch.object(db_session, "commit", side_effect=failure):
        with pytest.raises(UpstreamUnavailable):
            update_profile(db_session, child_ctx, UserUpdate(display_name="AJ"))

    principal = db_session.query(AuthPrincipal).filter(AuthPrincipal.id == child_id).first()
    membership = db_session.query(ChildMembership).filter(ChildMembership.child_id == child_id).first()
    assert principal.display_name == "Arjun"
    assert get_user_by_id(db_session, child_id).display_name == "Arjun"
    assert membership.display_name == "Arjun"
    assert child_ctx.principal.display_name == "Arjun"

def test_update_password_service(db_session, parent_ctx):
    update_password(db_session, parent_ctx, PasswordUpdate(new_password="brandnew"))

    with pytest.raises(NotAuthenticated):
        login(db_session, SessionContext(), LoginRequest(email=PARENT_EMAIL, password=PARENT_PASSWORD))
    assert login(db_session, SessionContext(), LoginRequest(email=PARENT_EMAIL, password="brandnew"))

# API layer tests
def test_register_api(client):
    """Test parent registration through the API"""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "apiuser@example.com", "password": "secret1", "display_name": "API User"}
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "apiuser@example.com"
    assert data["user"]["role"] == "parent"

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["display_name"] == "API User"

def test_register_duplicate_api(client, parent_ctx):
    """Test that registering a duplicate email through the API fails"""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": PARENT_EMAIL, "password": "secret1", "display_name": "Duplicate"}
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Email already registered" in response.json()["detail"]

def test_invalid_email_format(client):
    """Test validation of email format"""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "invalid-email", "password": "secret1", "display_name": "Invalid Email"}
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

def test_empty_display_name(client):
    """Test validation of empty display name"""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "valid@example.com", "password": "secret1", "display_name": ""}
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

def test_short_password(client):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "valid@example.com", "password": "abc", "display_name": "Short"}
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

def test_login_api(client, child_id):
    response = client.post(
        "/api/v1/auth/login",
        json={"email": CHILD_EMAIL, "password": CHILD_PASSWORD}
    )

    assert response.status_code == status.HTTP_200_OK
    user = response.json()["user"]
    assert user["id"] == child_id
    assert user["role"] == "child"

def test_login_api_wrong_password(client, parent_ctx):
    response = client.post(
        "/api/v1/auth/login",
        json={"email": PARENT_EMAIL, "password": "wrongpass"}
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["www-authenticate"] == "Bearer"

def test_logout_api(client, parent_ctx, auth_headers):
    headers = auth_headers(parent_ctx)

    response = client.post("/api/v1/auth/logout", headers=headers)
    assert response.status_code == status.HTTP_204_NO_CONTENT

    response = client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

def test_me_without_token(client):
    response = client.get("/api/v1/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

def test_me_with_unknown_token(client):
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

def test_update_me_api(client, parent_ctx, auth_headers):
    """Test updating the display name through the API"""
    response = client.patch(
        "/api/v1/auth/me",
        json={"display_name": "API Updated Name"},
        headers=auth_headers(parent_ctx)
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["display_name"] == "API Updated Name"

def test_update_password_api(client, parent_ctx, auth_headers):
    response = client.put(
        "/api/v1/auth/me/password",
        json={"new_password": "brandnew"},
        headers=auth_headers(parent_ctx)
    )
    assert response.status_code == status.HTTP_204_NO_CONTENT

    response = client.post("/api/v1/auth/login", json={"email": PARENT_EMAIL, "password": "brandnew"})
    assert response.status_code == status.HTTP_200_OK
