# Post_Validator.py
# Description: Validates posts coming back from the remote API before they are written to the local cache.
#
"""
Post_Validator.py
-----------------

Keeps invalid or corrupted records out of the local cache.

A post is rejected when any of these fail:
- `id` is a positive integer that fits a SQLite INTEGER (at most 2**63 - 1).
- `title` / `body` are text, non-blank, at most 200 / 10000 characters, and
  survive a UTF-8 encode/decode round trip (catches lone surrogates and other
  malformed character data).

`validate_posts` filters a whole page: accepted posts keep their input order,
rejected ones are dropped, and every failed rule produces one message of the
form "Record at index <i>: <reason>".
"""
# Imports
import logging
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple, Union
#
# Local Imports
from ..Constants import MAX_BODY_LENGTH, MAX_POST_ID, MAX_TITLE_LENGTH
from ..posts_api.schemas import Post, RawPost, to_post
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    """The post passed every rule."""


@dataclass(frozen=True)
class Rejected:
    """The post failed one or more rules; reasons are in check order."""
    reasons: Tuple[str, ...]


ValidationResult = Union[Accepted, Rejected]


def is_valid_utf8(text: str) -> bool:
    """Checks that a string encodes to UTF-8 and decodes back to the same string."""
    try:
        return text.encode("utf-8").decode("utf-8") == text
    except UnicodeError:
        return False


def _check_text_field(label: str, value: Any, max_length: int) -> List[str]:
    # Checks are ordered; only the first failing one is reported for a field.
    if not isinstance(value, str):
        return [f"Post {label} is missing or not text"]
    if not value.strip():
        return [f"Post {label} is blank"]
    if len(value) > max_length:
        return [f"Post {label} exceeds {max_length} characters"]
    if not is_valid_utf8(value):
        return [f"Post {label} contains invalid characters"]
    return []


def validate_post(post: RawPost) -> ValidationResult:
    """
    Validates a single post.

    Args:
        post: The post as received from the API.

    Returns:
        Accepted, or Rejected carrying every reason found.
    """
    errors: List[str] = []

    # bool is an int subclass; a JSON `true` is not an id.
    if isinstance(post.id, bool) or not isinstance(post.id, int) or not 0 < post.id <= MAX_POST_ID:
        errors.append(f"Invalid post ID: {post.id!r}")

    errors.extend(_check_text_field("title", post.title, MAX_TITLE_LENGTH))
    errors.extend(_check_text_field("body", post.body, MAX_BODY_LENGTH))

    if errors:
        return Rejected(tuple(errors))
    return Accepted()


def validate_posts(posts: Sequence[RawPost]) -> Tuple[List[Post], List[str]]:
    """
    Validates a batch of posts and filters out the invalid ones.

    Args:
        posts: The page as received from the API.

    Returns:
        (accepted posts in input order, rejection messages).
    """
    valid_posts: List[Post] = []
    all_errors: List[str] = []

    for index, post in enumerate(posts):
        result = validate_post(post)
        if isinstance(result, Rejected):
            all_errors.extend(f"Record at index {index}: {reason}" for reason in result.reasons)
        else:
            valid_posts.append(to_post(post))

    if all_errors:
        logger.warning(f"Dropped {len(posts) - len(valid_posts)} of {len(posts)} posts that failed validation "
                       f"({len(all_errors)} problems).")
    return valid_posts, all_errors

#
# End of Post_Validator.py
########################################################################################################################
