# Posts_DB.py
# Description: DB Library for the local posts cache.
#
"""
Posts_DB.py
-----------

A SQLite-backed cache for posts fetched from the remote API. It is the single
source of truth the rest of the application observes.

This library provides:
- Schema management with versioning.
- Thread-safe database connections using `threading.local` (file databases) or a
  single shared connection (`:memory:` databases, which are per-connection).
- Bulk upsert keyed by post id, and a full clear, each in one transaction.
- A live view of the cache: every successful write publishes a full snapshot of
  the cached posts, ordered by first insertion, to all subscribers.
- A transaction context manager for safe and explicit transaction handling.
- Custom exceptions for storage failures, schema issues and input validation.

Writes are serialized by a store-wide lock that also covers re-reading the
snapshot and publishing it, so subscribers see snapshots in commit order and
never observe half of a batch.
"""
# Imports
import sqlite3
import threading
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union
#
# Local Imports
from ..posts_api.schemas import Post
from ..Sync.Snapshot_Broadcaster import PostSnapshot, SnapshotBroadcaster, SnapshotSubscription
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---
class StoreError(Exception):
    """Base exception for posts cache failures (connection, query, commit)."""
    pass


class SchemaError(StoreError):
    """Exception for schema version mismatches or migration failures."""
    pass


class InputError(StoreError, ValueError):
    """Raised when a caller hands the store something that is not a Post."""
    pass


def row_to_post(row: sqlite3.Row) -> Post:
    return Post(id=row["id"], title=row["title"], body=row["body"])


# --- Database Class ---
class PostsDB:
    """
    Manages SQLite connections and operations for the posts cache.

    Attributes:
        db_path (Path): The absolute path to the SQLite database file, or Path(":memory:").
        client_id (str): The identifier for the client instance using this database.
        is_memory_db (bool): True if the database is in-memory.
        db_path_str (str): String representation of the database path for SQLite connection.
    """
    _CURRENT_SCHEMA_VERSION = 1
    _SCHEMA_NAME = "posts_cache_schema"

    # `seq` keeps first-insertion order; an upsert of an existing id updates in place
    # and so does not move the post to the end of the list.
    _FULL_SCHEMA_SQL_V1 = """
CREATE TABLE IF NOT EXISTS db_schema_version(
  schema_name TEXT PRIMARY KEY NOT NULL,
  version     INTEGER NOT NULL
);
INSERT OR IGNORE INTO db_schema_version(schema_name, version) VALUES('posts_cache_schema', 0);

CREATE TABLE IF NOT EXISTS posts(
  seq        INTEGER PRIMARY KEY AUTOINCREMENT,
  id         INTEGER NOT NULL UNIQUE CHECK (id > 0),
  title      TEXT    NOT NULL,
  body       TEXT    NOT NULL,
  updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
);

UPDATE db_schema_version
   SET version = 1
 WHERE schema_name = 'posts_cache_schema'
   AND version < 1;
"""

    _UPSERT_SQL = """
INSERT INTO posts(id, title, body) VALUES(:id, :title, :body)
ON CONFLICT(id) DO UPDATE SET
  title      = excluded.title,
  body       = excluded.body,
  updated_at = CURRENT_TIMESTAMP
"""

    def __init__(self, db_path: Union[str, Path], client_id: str):
        """
        Initializes the PostsDB instance.

        Args:
            db_path: Path to the SQLite database file or ":memory:".
            client_id: Identifier for this client instance. Must not be empty.

        Raises:
            ValueError: If `client_id` is empty or None.
            StoreError: If the database directory cannot be created or initialization fails.
            SchemaError: If the on-disk schema is newer than this code or cannot be applied.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = False
            self.db_path = db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(db_path).resolve() if not self.is_memory_db else Path(":memory:")
        self.db_path_str = str(self.db_path) if not self.is_memory_db else ':memory:'

        if not client_id:
            raise ValueError("Client ID cannot be empty or None.")
        self.client_id = client_id

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(f"Failed to create database directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing PostsDB for path: {self.db_path_str} [Client ID: {self.client_id}]")
        self._local = threading.local()
        self._shared_conn: Optional[sqlite3.Connection] = None
        self._conn_lock = threading.RLock()
        self._write_lock = threading.RLock()
        try:
            self._initialize_schema()
            self._broadcaster = SnapshotBroadcaster(self.get_all_posts())
            logger.debug(f"PostsDB initialization completed successfully for {self.db_path_str}")
        except (StoreError, sqlite3.Error) as e:
            logger.critical(f"FATAL: DB Initialization failed for {self.db_path_str}: {e}", exc_info=True)
            self.close_connection()
            if isinstance(e, SchemaError):
                raise
            raise StoreError(f"Database initialization failed: {e}") from e

    # --- Connection Management ---
    def _open_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path_str,
            check_same_thread=False,
            timeout=15,
            isolation_level=None,  # Autocommit; transaction() issues BEGIN IMMEDIATE itself
        )
        conn.row_factory = sqlite3.Row
        if not self.is_memory_db:
            conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _get_thread_connection(self) -> sqlite3.Connection:
        """
        Retrieves or creates the connection for the calling thread.

        File databases get one connection per thread. An in-memory database only
        exists inside its connection, so every thread shares one.

        Raises:
            StoreError: If connecting to the database fails.
        """
        if self.is_memory_db:
            with self._conn_lock:
                if self._shared_conn is None:
                    try:
                        self._shared_conn = self._open_connection()
                    except sqlite3.Error as e:
                        raise StoreError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
                return self._shared_conn

        conn = getattr(self._local, 'conn', None)
        if conn:
            try:
                conn.execute("SELECT 1")  # Check if connection is still alive
            except (sqlite3.ProgrammingError, sqlite3.OperationalError):
                logger.warning(
                    f"Thread-local connection for {self.db_path_str} was closed or became unusable. Reopening.")
                conn = None

        if not conn:
            try:
                conn = self._open_connection()
                self._local.conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str} for thread {threading.get_ident()}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database {self.db_path_str}: {e}", exc_info=True)
                self._local.conn = None
                raise StoreError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._local.conn

    def get_connection(self) -> sqlite3.Connection:
        return self._get_thread_connection()

    def close_connection(self):
        """
        Closes the current thread's database connection (the shared one for `:memory:`).

        For WAL file databases a TRUNCATE checkpoint is attempted first; an open
        transaction is rolled back.
        """
        if self.is_memory_db:
            with self._conn_lock:
                conn, self._shared_conn = self._shared_conn, None
        else:
            conn = getattr(self._local, 'conn', None)
            self._local.conn = None
        if conn is None:
            return
        try:
            if conn.in_transaction:
                logger.warning(f"Connection to {self.db_path_str} is in an uncommitted transaction during close. "
                               f"Rolling back.")
                conn.rollback()
            if not self.is_memory_db:
                try:
                    conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
                except sqlite3.Error as cp_err:
                    logger.warning(f"WAL checkpoint failed for {self.db_path_str}: {cp_err}")
            conn.close()
            logger.debug(f"Closed connection for thread {threading.get_ident()} to {self.db_path_str}.")
        except sqlite3.Error as e:
            logger.warning(f"Error during SQLite connection close for {self.db_path_str}: {e}")

    def close(self):
        """Closes every subscription and this thread's connection."""
        broadcaster = getattr(self, "_broadcaster", None)
        if broadcaster is not None:
            broadcaster.close()
        self.close_connection()

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[Union[tuple, Dict[str, Any]]] = None, *,
                      commit: bool = False) -> sqlite3.Cursor:
        """
        Executes a single SQL query.

        Raises:
            StoreError: For any SQLite error.
        """
        conn = self.get_connection()
        try:
            cursor = conn.execute(query, params or ())
            if commit and not conn.in_transaction:
                conn.commit()
            return cursor
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {query[:300]}... Error: {e}", exc_info=True)
            raise StoreError(f"Query execution failed: {e}") from e

    def transaction(self) -> 'TransactionContextManager':
        """
        Returns a context manager for database transactions.

        Usage:
            with db.transaction() as conn:
                conn.execute(...)
        Commit on successful exit, rollback on exception.
        """
        return TransactionContextManager(self)

    # --- Schema Initialization and Migration ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            cursor = conn.execute("SELECT version FROM db_schema_version WHERE schema_name = ? LIMIT 1",
                                  (self._SCHEMA_NAME,))
            result = cursor.fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table" in str(e).lower():
                return 0
            raise SchemaError(f"Could not determine schema version for '{self._SCHEMA_NAME}': {e}") from e

    def _initialize_schema(self):
        """
        Creates the schema on a fresh database or checks the version of an existing one.

        Raises:
            SchemaError: If the database is newer than this code, or an older
                         version has no migration path, or the script fails.
        """
        conn = self.get_connection()
        current_db_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.info(f"Checking DB schema '{self._SCHEMA_NAME}'. Current version: {current_db_version}. "
                    f"Code supports: {target_version}")

        if current_db_version == target_version:
            logger.debug(f"Database schema '{self._SCHEMA_NAME}' is up to date (Version {target_version}).")
            return
        if current_db_version > target_version:
            raise SchemaError(
                f"Database schema '{self._SCHEMA_NAME}' version ({current_db_version}) is newer than supported "
                f"by code ({target_version}). Aborting.")

        try:
            # executescript manages its own transaction
            conn.executescript(self._FULL_SCHEMA_SQL_V1)
        except sqlite3.Error as e:
            logger.error(f"[{self._SCHEMA_NAME} V{target_version}] Schema application failed: {e}", exc_info=True)
            raise SchemaError(f"DB schema V{target_version} setup failed for '{self._SCHEMA_NAME}': {e}") from e

        final_version = self._get_db_version(conn)
        if final_version != target_version:
            raise SchemaError(f"Schema version update check failed. Expected {target_version}, got: {final_version}")
        logger.info(f"Database schema '{self._SCHEMA_NAME}' initialized to version {final_version}.")

    # --- Reads ---
    def get_all_posts(self) -> List[Post]:
        """Returns every cached post, ordered by first insertion."""
        cursor = self.execute_query("SELECT id, title, body FROM posts ORDER BY seq ASC")
        return [row_to_post(row) for row in cursor.fetchall()]

    def get_post_by_id(self, post_id: int) -> Optional[Post]:
        cursor = self.execute_query("SELECT id, title, body FROM posts WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        return row_to_post(row) if row else None

    def count_posts(self) -> int:
        cursor = self.execute_query("SELECT COUNT(*) AS n FROM posts")
        return cursor.fetchone()["n"]

    # --- Writes ---
    def upsert_posts(self, posts: Sequence[Post]) -> int:
        """
        Inserts new posts and replaces existing ones by id, in one transaction.

        An empty sequence is a no-op and publishes nothing.

        Returns:
            The number of posts written.

        Raises:
            InputError: If an item is not a Post.
            StoreError: If the write fails. Nothing is published in that case.
        """
        posts = list(posts)
        if not posts:
            logger.debug("upsert_posts called with no posts; nothing to do.")
            return 0
        for item in posts:
            if not isinstance(item, Post):
                raise InputError(f"upsert_posts expects Post objects, got {type(item).__name__}")

        with self._write_lock:
            with self.transaction() as conn:
                try:
                    conn.executemany(self._UPSERT_SQL, [post.to_row() for post in posts])
                except (sqlite3.Error, OverflowError) as e:
                    raise StoreError(f"Failed to upsert {len(posts)} posts: {e}") from e
            self._publish_current()
        logger.info(f"Upserted {len(posts)} posts.")
        return len(posts)

    def clear_all(self) -> int:
        """
        Removes every cached post in one transaction.

        Returns:
            The number of posts removed.

        Raises:
            StoreError: If the delete fails. Nothing is published in that case.
        """
        with self._write_lock:
            with self.transaction() as conn:
                try:
                    removed = conn.execute("DELETE FROM posts").rowcount
                except sqlite3.Error as e:
                    raise StoreError(f"Failed to clear posts cache: {e}") from e
            self._publish_current()
        logger.info(f"Cleared posts cache ({removed} posts removed).")
        return removed

    def _publish_current(self) -> Optional[PostSnapshot]:
        """
        Publishes the committed state to subscribers. Caller holds _write_lock.

        Runs after the commit, so a failed re-read does not fail the write: it is
        logged, subscribers keep the previous snapshot, and the next successful
        write publishes the full state again.
        """
        try:
            posts = self.get_all_posts()
        except StoreError as e:
            logger.error(f"Write committed but the snapshot could not be re-read; not published: {e}")
            return None
        return self._broadcaster.publish(posts)

    # --- Live view ---
    @property
    def current_snapshot(self) -> PostSnapshot:
        return self._broadcaster.current

    def observe(self, transform: Optional[Callable[[PostSnapshot], Any]] = None) -> SnapshotSubscription:
        """
        Subscribes to the cache.

        The current snapshot is pending immediately; afterwards a new full snapshot
        follows every successful upsert or clear.
        """
        return self._broadcaster.subscribe(transform)

    def unsubscribe(self, subscription: SnapshotSubscription) -> None:
        self._broadcaster.unsubscribe(subscription)


# --- Transaction Context Manager Class (Helper for `with db.transaction():`) ---
class TransactionContextManager:
    def __init__(self, db_instance: PostsDB):
        self.db = db_instance
        self.conn: Optional[sqlite3.Connection] = None
        self.is_outermost_transaction = False

    def __enter__(self) -> sqlite3.Connection:
        self.conn = self.db.get_connection()
        if not self.conn.in_transaction:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"Could not begin transaction: {e}") from e
            self.is_outermost_transaction = True
            logger.debug(f"Transaction started (outermost) on thread {threading.get_ident()}.")
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.is_outermost_transaction:
            return False

        if exc_type:
            logger.error(f"Transaction failed, rolling back on thread {threading.get_ident()}: "
                         f"{exc_type.__name__} - {exc_val}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err:
                logger.critical(f"Rollback FAILED on thread {threading.get_ident()}: {rb_err}", exc_info=True)
            return False

        try:
            self.conn.commit()
            logger.debug(f"Transaction committed on thread {threading.get_ident()}.")
        except sqlite3.Error as commit_err:
            logger.error(f"Commit FAILED on thread {threading.get_ident()}, attempting rollback: {commit_err}",
                         exc_info=True)
            try:
                self.conn.rollback()
            except sqlite3.Error as rb_err_after_commit_fail:
                logger.critical(f"Rollback after failed commit also FAILED: {rb_err_after_commit_fail}",
                                exc_info=True)
            raise StoreError(f"Commit failed: {commit_err}") from commit_err
        return False

#
# End of Posts_DB.py
########################################################################################################################
