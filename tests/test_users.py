import json

import pytest

from careercoach.errors import AuthorizationError, GenerationError, NotFoundError, ValidationError
from careercoach.identity import create_identity_token, decode_identity_token, extract_bearer_token
from careercoach.store import fetch_insight
from careercoach.users import (
    display_name_from_email,
    onboarding_status,
    parse_experience,
    parse_skills,
    require_industry,
    sync_user,
    update_profile,
)

from conftest import FakeGenerator, make_insight_payload


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Python, SQL ,, Go", ["Python", "SQL", "Go"]),
        (["React", " ", "Node"], ["React", "Node"]),
        (None, []),
    ],
)
def test_parse_skills(raw, expected):
    assert parse_skills(raw) == expected


@pytest.mark.parametrize("raw, expected", [("5", 5), (3, 3), ("-2", 0), ("ten", 0), (None, 0)])
def test_parse_experience(raw, expected):
    assert parse_experience(raw) == expected


def test_display_name_from_email():
    assert display_name_from_email("jane.doe@example.com") == "Jane Doe"
    assert display_name_from_email("") == "Member"


def test_sync_user_is_idempotent(db):
    first = sync_user(db, {"sub": "user_1", "email": "Jane.Doe@Example.com"})
    second = sync_user(db, {"sub": "user_1", "email": "jane.doe@example.com", "name": "Jane D."})

    assert first["id"] == second["id"]
    assert first["name"] == "Jane Doe"
    assert second["name"] == "Jane D."
    assert second["email"] == "jane.doe@example.com"


def test_onboarding_requires_industry(user):
    assert onboarding_status(user) == {"isOnboarded": False}
    with pytest.raises(NotFoundError):
        require_industry(user)


def test_update_profile_resolves_insights_first(db, user):
    generator = FakeGenerator(json.dumps(make_insight_payload()))

    updated = update_profile(db, generator, user, "tech-software-development", experience="4", bio="Hi", skills="Python, Go")

    assert updated["industry"] == "tech-software-development"
    assert updated["experience"] == 4
    assert updated["skills"] == ["Python", "Go"]
    assert onboarding_status(updated) == {"isOnboarded": True}
    assert fetch_insight(db, "tech-software-development") is not None


def test_update_profile_leaves_user_untouched_when_generation_fails(db, user):
    with pytest.raises(GenerationError):
        update_profile(db, FakeGenerator("not json"), user, "tech-software-development")
    assert onboarding_status(sync_user(db, {"sub": "user_alice", "email": "alice@example.com", "name": "Alice"})) == {
        "isOnboarded": False
    }


def test_update_profile_requires_industry(db, user):
    with pytest.raises(ValidationError):
        update_profile(db, FakeGenerator(), user, "  ")


def test_identity_token_round_trip():
    token = create_identity_token("secret", "user_1", email="A@B.com", name="A")
    claims = decode_identity_token("secret", token)
    assert claims["sub"] == "user_1"
    assert claims["email"] == "a@b.com"


@pytest.mark.parametrize("token", ["garbage", "a.b.c"])
def test_identity_token_rejects_malformed(token):
    with pytest.raises(AuthorizationError):
        decode_identity_token("secret", token)


def test_identity_token_rejects_wrong_secret():
    token = create_identity_token("secret", "user_1")
    with pytest.raises(AuthorizationError):
        decode_identity_token("other-secret", token)


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token(None) is None
