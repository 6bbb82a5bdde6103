# Tests/DB/conftest.py
#
# Imports
import uuid
from pathlib import Path
from typing import Callable
import pytest
#
# Local imports
from postfeed.DB.Posts_DB import PostsDB
#
############################################################################################################################
#
# Functions:

@pytest.fixture
def memory_db():
    db = PostsDB(":memory:", client_id="test_client")
    yield db
    db.close()


@pytest.fixture
def file_db_path(tmp_path: Path) -> Path:
    return tmp_path / "posts_test.db"


@pytest.fixture
def db_factory(tmp_path: Path) -> Callable[[], PostsDB]:
    """Creates isolated file-backed PostsDB instances and closes them afterwards."""
    created = []

    def _create() -> PostsDB:
        db = PostsDB(tmp_path / f"posts_{uuid.uuid4().hex}.db", client_id=f"client_{uuid.uuid4().hex[:8]}")
        created.append(db)
        return db

    yield _create

    for db in created:
        db.close()

#
# End of DB conftest.py
########################################################################################################################
