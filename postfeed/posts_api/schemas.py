# postfeed/posts_api/schemas.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


# --- Inbound shape (mirrors the remote /posts payload, before validation) ---
class RawPost(BaseModel):
    """
    A post exactly as the server sent it.

    Fields are left untyped on purpose: a malformed id or a title with broken
    character data has to reach the validator, which reports it with the
    record's index instead of failing the whole page here.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Any = None
    title: Any = None
    body: Any = None
    user_id: Optional[Any] = None

    @classmethod
    def from_json(cls, item: Any) -> "RawPost":
        if not isinstance(item, dict):
            # Keeps its slot in the batch so the rejection points at the right index
            return cls()
        return cls(
            id=item.get("id"),
            title=item.get("title"),
            body=item.get("body"),
            user_id=item.get("userId"),
        )


# --- Domain record ---
class Post(BaseModel):
    """Immutable, validated post. Identity is `id`."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    body: str

    def to_row(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "body": self.body}


def to_post(raw: RawPost) -> Post:
    """Maps an already-validated RawPost onto the domain record."""
    return Post(id=raw.id, title=raw.title, body=raw.body)

#
# End of schemas.py
########################################################################################################################
