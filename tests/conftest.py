"""
Pytest config.

The modules live at the repo root, so make sure it is on sys.path even when a
global `pytest` entrypoint is used. Fixtures build the app around an in-memory
user store, a VADER analyzer over a small lexicon file and a fake Google client
so no test needs MongoDB, the downloaded NLTK data or the network.
"""

from __future__ import annotations

import copy
import sys
from pathlib import Path

import nltk
import pytest
from bson.objectid import ObjectId


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from google_oauth import GoogleProfile, OAuthError  # noqa: E402
from journal_store import DuplicateUserError, StoreError, User  # noqa: E402
from nltk.sentiment.vader import SentimentIntensityAnalyzer  # noqa: E402

from sentiment import ComparativeScorer  # noqa: E402

LEXICON = {
    "love": 3.2,
    "happy": 2.7,
    "good": 1.9,
    "bad": -2.5,
    "terrible": -2.1,
    "sad": -2.1,
}


class InMemoryUserStore:
    """Same surface as journal_store.UserStore, backed by a dict."""

    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.fail_writes = False

    def setup_indexes(self) -> None:
        return None

    def ping(self) -> None:
        if self.fail_writes:
            raise StoreError("down")

    def get_by_id(self, user_id):
        user = self.users.get(str(user_id))
        return copy.deepcopy(user) if user else None

    def get_by_username(self, username):
        for user in self.users.values():
            if user.username == username:
                return copy.deepcopy(user)
        return None

    def create_local_user(self, username, password_hash, first_name, last_name, email=None):
        if any(u.username == username for u in self.users.values()):
            raise DuplicateUserError(username)
        user = User(
            id=str(ObjectId()),
            username=username,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
        )
        self.users[user.id] = user
        return copy.deepcopy(user)

    def find_or_create_google_user(self, google_id, first_name=None, last_name=None):
        for user in self.users.values():
            if user.google_id == google_id:
                return copy.deepcopy(user)
        user = User(id=str(ObjectId()), google_id=google_id, first_name=first_name, last_name=last_name)
        self.users[user.id] = user
        return copy.deepcopy(user)

    def append_post(self, user_id, post):
        if self.fail_writes:
            raise StoreError("write failed")
        user = self.users.get(str(user_id))
        if user is None:
            return False
        user.posts.append(copy.deepcopy(post))
        return True

    def find_post(self, user_id, post_id):
        user = self.get_by_id(user_id)
        if user is None:
            return None
        return next((p for p in user.posts if p.id == post_id), None)


class FakeOAuthClient:
    def __init__(self, profile: GoogleProfile | None = None, configured: bool = True) -> None:
        self.profile = profile or GoogleProfile(id="google-123", first_name="Grace", last_name="Hopper")
        self.configured = configured
        self.codes: list[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?state={state}"

    def fetch_profile(self, code: str) -> GoogleProfile:
        self.codes.append(code)
        if code == "bad-code":
            raise OAuthError("token exchange failed")
        return self.profile


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def scorer(tmp_path, monkeypatch) -> ComparativeScorer:
    # Same tab separated layout as vader_lexicon.txt, with no trailing newline
    lexicon_file = tmp_path / "vader_lexicon.txt"
    lexicon_file.write_text(
        "\n".join(f"{word}\t{weight}\t0.5\t[]" for word, weight in LEXICON.items()),
        encoding="utf-8",
    )
    # NLTK >= 3.10 only opens files under its data paths
    monkeypatch.setattr(nltk.data, "path", [*nltk.data.path, str(tmp_path)])
    analyzer = SentimentIntensityAnalyzer(lexicon_file=lexicon_file.as_uri())
    return ComparativeScorer(analyzer=analyzer)


@pytest.fixture
def oauth_client() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def app(store, scorer, oauth_client):
    from app import create_app

    return create_app(
        {"TESTING": True, "SECRET_KEY": "test-secret-key"},
        store=store,
        scorer=scorer,
        oauth_client=oauth_client,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username="alice", password="p1", first_name="Alice", last_name="Liddell"):
    return client.post(
        "/register",
        data={"username": username, "password": password, "firstName": first_name, "lastName": last_name},
    )


def compose(client, body, date="2021-01-05"):
    return client.post("/compose", data={"postBody": body, "date": date})
