import logging
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from journal_store import User, UserStore

logger = logging.getLogger(__name__)


class RegistrationError(ValueError):
    """The registration form is missing a required field."""


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Check a plain text password against a stored hash.

    Users created through Google have no hash; they can never log in locally.
    """
    if not password_hash:
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # Unknown hash method in the stored value
        return False


def register_local_user(
    store: UserStore,
    username: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> User:
    """
    Create a user that logs in with username and password.

    Raises:
        RegistrationError: username or password is blank
        DuplicateUserError: the username is already registered
    """
    username = (username or "").strip()
    if not username:
        raise RegistrationError("No username was given")
    if not password:
        raise RegistrationError("No password was given")

    user = store.create_local_user(
        username=username,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
    )
    logger.info(f"Registered local user {username}")
    return user


def authenticate_local(store: UserStore, username: str, password: str) -> Optional[User]:
    """Return the user when the credentials match, None otherwise."""
    username = (username or "").strip()
    if not username or not password:
        return None

    user = store.get_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        logger.info(f"Failed local login for {username}")
        return None
    return user
