"""
User documents and their embedded journal posts, stored in MongoDB.

A user document looks like:

    {_id, username, email, passwordHash, googleId, firstName, lastName,
     posts: [{_id, body, date, score}]}

Posts have no collection of their own; they live and die with their user.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from bson.objectid import ObjectId
from flask_login import UserMixin
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the database rejects or fails an operation."""


class DuplicateUserError(StoreError):
    """A user with the same username or Google id already exists."""


@dataclass
class Post:
    id: str
    body: str
    date: datetime
    score: float

    @classmethod
    def from_document(cls, doc):
        return cls(
            id=str(doc["_id"]),
            body=doc.get("body", ""),
            date=doc.get("date"),
            score=float(doc.get("score", 0.0)),
        )

    def to_document(self):
        return {
            "_id": ObjectId(self.id),
            "body": self.body,
            "date": self.date,
            "score": self.score,
        }


@dataclass
class User(UserMixin):
    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    password_hash: Optional[str] = None
    google_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    posts: List[Post] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc):
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username"),
            email=doc.get("email"),
            password_hash=doc.get("passwordHash"),
            google_id=doc.get("googleId"),
            first_name=doc.get("firstName"),
            last_name=doc.get("lastName"),
            posts=[Post.from_document(p) for p in doc.get("posts") or []],
        )

    @property
    def display_name(self):
        return self.first_name or self.username or "friend"


def new_post(body: str, date: datetime, score: float) -> Post:
    return Post(id=str(ObjectId()), body=body, date=date, score=score)


def _object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class UserStore:
    """Reads and writes user documents through a pymongo database handle."""

    def __init__(self, db):
        self.users = db.users

    def setup_indexes(self):
        # Sparse so that local users without a googleId (and Google users
        # without a username) do not collide on null.
        try:
            self.users.create_index([("username", ASCENDING)], unique=True, sparse=True)
            self.users.create_index([("googleId", ASCENDING)], unique=True, sparse=True)
            logger.info("User indexes created successfully")
        except PyMongoError as e:
            logger.error(f"Error setting up user indexes: {str(e)}")
            raise StoreError(str(e)) from e

    def _find_one(self, query):
        try:
            return self.users.find_one(query)
        except PyMongoError as e:
            logger.error(f"Error looking up user {query}: {str(e)}")
            raise StoreError(str(e)) from e

    def get_by_id(self, user_id) -> Optional[User]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        doc = self._find_one({"_id": oid})
        return User.from_document(doc) if doc else None

    def get_by_username(self, username: str) -> Optional[User]:
        doc = self._find_one({"username": username})
        return User.from_document(doc) if doc else None

    def create_local_user(self, username, password_hash, first_name, last_name, email=None) -> User:
        doc = {
            "username": username,
            "email": email,
            "passwordHash": password_hash,
            "firstName": first_name,
            "lastName": last_name,
            "posts": [],
        }
        try:
            result = self.users.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateUserError(f"username {username!r} is taken") from e
        except PyMongoError as e:
            logger.error(f"Error creating user {username}: {str(e)}")
            raise StoreError(str(e)) from e
        doc["_id"] = result.inserted_id
        return User.from_document(doc)

    def find_or_create_google_user(self, google_id, first_name=None, last_name=None) -> User:
        try:
            doc = self.users.find_one_and_update(
                {"googleId": google_id},
                {"$setOnInsert": {
                    "googleId": google_id,
                    "firstName": first_name,
                    "lastName": last_name,
                    "posts": [],
                }},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Two concurrent upserts for the same id: the loser reads the winner.
            doc = self._find_one({"googleId": google_id})
        except PyMongoError as e:
            logger.error(f"Error finding or creating Google user {google_id}: {str(e)}")
            raise StoreError(str(e)) from e
        if doc is None:
            raise StoreError(f"Google user {google_id} vanished after upsert")
        return User.from_document(doc)

    def append_post(self, user_id, post: Post) -> bool:
        oid = _object_id(user_id)
        if oid is None:
            return False
        try:
            result = self.users.update_one({"_id": oid}, {"$push": {"posts": post.to_document()}})
        except PyMongoError as e:
            logger.error(f"Error adding post for user {user_id}: {str(e)}")
            raise StoreError(str(e)) from e
        return result.matched_count == 1

    def find_post(self, user_id, post_id) -> Optional[Post]:
        user = self.get_by_id(user_id)
        if user is None:
            return None
        return next((p for p in user.posts if p.id == post_id), None)

    def ping(self):
        try:
            self.users.database.command("ping")
        except PyMongoError as e:
            raise StoreError(str(e)) from e
