# postfeed/posts_api/__init__.py
from .client import PostsAPIClient
from .exceptions import (
    TransportError, APIConnectionError, APIRequestError, APIResponseError
)
from .schemas import RawPost, Post, to_post

__all__ = [
    "PostsAPIClient",
    "TransportError", "APIConnectionError", "APIRequestError", "APIResponseError",
    "RawPost", "Post", "to_post",
]
