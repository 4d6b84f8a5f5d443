"""Database connection and schema migrations for the forum's SQLite store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

log = logging.getLogger(__name__)

SCHEMA_VERSION = 8

NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


class StoreError(Exception):
    """Raised when the database cannot carry out a request."""


class NotFoundError(StoreError, LookupError):
    """Raised when a requested record does not exist."""


class MigrationError(StoreError):
    """Raised when the schema cannot be brought up to date."""


def _to_datetime(raw: bytes) -> datetime:
    return datetime.fromisoformat(raw.decode()).replace(tzinfo=timezone.utc)


def _to_bool(raw: bytes) -> bool:
    return raw not in (b"0", b"")


sqlite3.register_converter("timestamptz", _to_datetime)
sqlite3.register_converter("boolean", _to_bool)


_CHECK_LOCKED_V1 = """
CREATE TRIGGER check_is_locked_topic
    BEFORE INSERT
    ON posts
    FOR EACH ROW
    WHEN NOT coalesce((SELECT is_admin FROM users WHERE id = NEW.user_id), 0)
        AND (
            coalesce((SELECT b.is_locked
                      FROM boards b JOIN topics t ON t.board_id = b.id
                      WHERE t.id = NEW.topic_id), 0)
            OR (EXISTS (SELECT 1 FROM posts WHERE topic_id = NEW.topic_id)
                AND coalesce((SELECT is_locked FROM topics WHERE id = NEW.topic_id), 0))
        )
BEGIN
    SELECT RAISE(IGNORE);
END;
"""

_CHECK_LOCKED_V3 = """
CREATE TRIGGER check_is_locked_topic
    BEFORE INSERT
    ON posts
    FOR EACH ROW
    WHEN NOT coalesce((SELECT is_admin FROM users WHERE id = NEW.user_id), 0)
        AND (
            coalesce((SELECT f.is_locked
                      FROM forums f
                               JOIN boards b ON b.forum_id = f.id
                               JOIN topics t ON t.board_id = b.id
                      WHERE t.id = NEW.topic_id), 0)
            OR coalesce((SELECT b.is_locked
                         FROM boards b JOIN topics t ON t.board_id = b.id
                         WHERE t.id = NEW.topic_id), 0)
            OR (EXISTS (SELECT 1 FROM posts WHERE topic_id = NEW.topic_id)
                AND coalesce((SELECT is_locked FROM topics WHERE id = NEW.topic_id), 0))
        )
BEGIN
    SELECT RAISE(IGNORE);
END;
"""

_TOPICS_SUMMARY_V6 = """
CREATE VIEW topics_summary AS
SELECT t.id AS topic_id,
       p.subject,
       p.content,
       t.posts_count,
       t.updated_at,
       u.id AS user_id,
       u.name,
       t.board_id,
       t.is_sticky,
       t.is_locked,
       t.post_id,
       p.created_at
FROM topics t
         LEFT JOIN posts p ON t.post_id = p.id
         LEFT JOIN users u ON p.user_id = u.id
ORDER BY t.is_sticky DESC, t.updated_at DESC;
"""

_SCHEMA_V1 = f"""
CREATE TABLE schema_version
(
    version text NOT NULL
);

CREATE TABLE users
(
    id       integer PRIMARY KEY AUTOINCREMENT,
    name     text UNIQUE CHECK (name <> '' AND length(name) <= 15),
    hash     text    NOT NULL CHECK (hash <> ''),
    about    text    NOT NULL DEFAULT '',
    picture  text    NOT NULL DEFAULT '',
    is_admin boolean NOT NULL DEFAULT 0
);

CREATE TABLE keys
(
    id         integer PRIMARY KEY AUTOINCREMENT,
    key        text UNIQUE CHECK (key <> '' AND length(key) <= 20),
    created_at timestamptz NOT NULL DEFAULT ({NOW}),
    user_id    integer UNIQUE REFERENCES users (id)
);

CREATE TABLE settings
(
    name text NOT NULL,
    css  text NOT NULL DEFAULT ''
);

CREATE TABLE forums
(
    id         integer PRIMARY KEY AUTOINCREMENT,
    name       text UNIQUE NOT NULL CHECK (name <> '' AND length(name) < 120),
    position   integer     NOT NULL,
    created_at timestamptz NOT NULL DEFAULT ({NOW})
);

CREATE TABLE boards
(
    id           integer PRIMARY KEY AUTOINCREMENT,
    name         text UNIQUE NOT NULL CHECK (name <> '' AND length(name) < 120),
    position     integer     NOT NULL,
    description  text,
    is_locked    boolean     NOT NULL DEFAULT 0,
    topics_count integer     NOT NULL DEFAULT 0,
    posts_count  integer     NOT NULL DEFAULT 0,
    created_at   timestamptz NOT NULL DEFAULT ({NOW}),
    updated_at   timestamptz NOT NULL DEFAULT ({NOW}),
    forum_id     integer     NOT NULL REFERENCES forums (id)
);

CREATE TABLE topics
(
    id          integer PRIMARY KEY AUTOINCREMENT,
    posts_count integer     NOT NULL DEFAULT 0,
    is_sticky   boolean     NOT NULL DEFAULT 0,
    is_locked   boolean     NOT NULL DEFAULT 0,
    updated_at  timestamptz NOT NULL DEFAULT ({NOW}),
    board_id    integer     NOT NULL REFERENCES boards (id),
    post_id     integer     NOT NULL
        REFERENCES posts (id) ON DELETE CASCADE DEFERRABLE INITIALLY DEFERRED
);

CREATE TABLE posts
(
    id         integer PRIMARY KEY AUTOINCREMENT,
    subject    text        NOT NULL CHECK (length(subject) <= 120),
    content    text        NOT NULL CHECK (length(content) <= 50000),
    created_at timestamptz NOT NULL DEFAULT ({NOW}),
    updated_at timestamptz NOT NULL DEFAULT ({NOW}),
    topic_id   integer     NULL REFERENCES topics (id),
    user_id    integer     NOT NULL REFERENCES users (id)
);

CREATE VIEW posts_full AS
SELECT p.topic_id AS topic_id,
       p.id       AS post_id,
       p.subject,
       p.content,
       p.created_at,
       p.updated_at,
       u.id       AS user_id,
       u.name,
       u.picture,
       u.about
FROM posts p
         LEFT JOIN users u ON p.user_id = u.id;

CREATE VIEW topics_summary AS
SELECT t.id AS topic_id,
       p.subject,
       p.content,
       t.posts_count,
       t.updated_at,
       u.id AS user_id,
       u.name,
       t.board_id,
       t.is_sticky,
       t.is_locked,
       t.post_id
FROM topics t
         LEFT JOIN posts p ON t.post_id = p.id
         LEFT JOIN users u ON p.user_id = u.id
ORDER BY t.is_sticky DESC, t.updated_at DESC;

CREATE VIEW forums_summary AS
SELECT b.id   AS board_id,
       f.id   AS forum_id,
       f.name AS forum_name,
       b.name AS board_name,
       b.description,
       b.topics_count,
       b.posts_count,
       b.updated_at
FROM boards b
         LEFT JOIN forums f ON f.id = b.forum_id
ORDER BY f.position, b.position, f.id;

{_CHECK_LOCKED_V1}

CREATE TRIGGER increase_topic_count_on_board
    AFTER INSERT
    ON topics
    FOR EACH ROW
BEGIN
    UPDATE boards SET topics_count = topics_count + 1 WHERE id = NEW.board_id;
END;

CREATE TRIGGER decrease_count_on_board
    AFTER DELETE
    ON topics
    FOR EACH ROW
BEGIN
    UPDATE boards
    SET topics_count = topics_count - 1,
        posts_count  = posts_count - 1
    WHERE id = OLD.board_id;
END;

CREATE TRIGGER update_count_on_board
    AFTER UPDATE OF posts_count, board_id
    ON topics
    FOR EACH ROW
BEGIN
    UPDATE boards
    SET topics_count = topics_count - 1,
        posts_count  = posts_count - OLD.posts_count
    WHERE id = OLD.board_id;
    UPDATE boards
    SET topics_count = topics_count + 1,
        posts_count  = posts_count + NEW.posts_count
    WHERE id = NEW.board_id;
END;

CREATE TRIGGER increase_post_count_on_topics
    AFTER INSERT
    ON posts
    FOR EACH ROW
BEGIN
    UPDATE topics SET posts_count = posts_count + 1 WHERE id = NEW.topic_id;
END;

CREATE TRIGGER decrease_post_count_on_topics
    AFTER DELETE
    ON posts
    FOR EACH ROW
BEGIN
    UPDATE topics SET posts_count = posts_count - 1 WHERE id = OLD.topic_id;
END;

CREATE TRIGGER get_topic_updated_at
    AFTER UPDATE OF posts_count
    ON topics
    FOR EACH ROW
BEGIN
    UPDATE topics
    SET updated_at = coalesce((SELECT updated_at
                               FROM posts
                               WHERE topic_id = OLD.id
                               ORDER BY updated_at DESC
                               LIMIT 1), topics.updated_at)
    WHERE id = OLD.id;
END;

CREATE TRIGGER get_board_updated_at
    AFTER UPDATE OF posts_count
    ON boards
    FOR EACH ROW
BEGIN
    UPDATE boards
    SET updated_at = coalesce((SELECT updated_at
                               FROM topics
                               WHERE board_id = OLD.id
                               ORDER BY updated_at DESC
                               LIMIT 1), boards.created_at)
    WHERE id = OLD.id;
END;

INSERT INTO settings (name) VALUES ('vpub');
INSERT INTO keys (key) VALUES ('admin');
"""

MIGRATIONS: dict[int, str] = {
    1: _SCHEMA_V1,
    2: "ALTER TABLE settings ADD COLUMN footer text NOT NULL DEFAULT '';",
    3: (
        "ALTER TABLE forums ADD COLUMN is_locked boolean NOT NULL DEFAULT 0;\n"
        "DROP TRIGGER check_is_locked_topic;\n" + _CHECK_LOCKED_V3
    ),
    4: "ALTER TABLE settings ADD COLUMN per_page integer NOT NULL DEFAULT 50;",
    5: "ALTER TABLE settings ADD COLUMN url text NOT NULL DEFAULT '';",
    6: "DROP VIEW topics_summary;\n" + _TOPICS_SUMMARY_V6,
    7: (
        "-- Removal of boards, forums, topics and users is carried out\n"
        "-- by the storage layer inside its own transactions.\n"
    ),
    8: "ALTER TABLE settings ADD COLUMN lang text NOT NULL DEFAULT 'en';",
    9: "ALTER TABLE users ADD COLUMN picture_alt text NOT NULL DEFAULT '';",
}


def _database_path(url: str) -> str:
    for prefix in ("sqlite:///", "sqlite://"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    return url or ":memory:"


def connect(url: str) -> sqlite3.Connection:
    """Open the database named by ``url`` (a path or ``sqlite:///`` URL).

    The schema is not migrated; call :func:`migrate` for that.
    """
    path = _database_path(url)
    try:
        connection = sqlite3.connect(
            path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            uri=path.startswith("file:"),
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as exc:
        raise StoreError(f"unable to open database {url!r}: {exc}") from exc
    return connection


def current_version(connection: sqlite3.Connection) -> int:
    """Return the applied schema version, 0 when the schema does not exist yet."""
    try:
        row = connection.execute("SELECT version FROM schema_version").fetchone()
    except sqlite3.OperationalError as exc:
        if str(exc).startswith("no such table"):
            log.info("schema_version table doesn't exist, treating current version as 0")
            return 0
        raise MigrationError(f"failed to select version from schema_version: {exc}") from exc
    if row is None:
        raise MigrationError("failed to select version from schema_version: no rows")
    try:
        return int(row[0])
    except (TypeError, ValueError) as exc:
        raise MigrationError(f"invalid schema version {row[0]!r}") from exc


def migrate(connection: sqlite3.Connection) -> int:
    """Apply every pending migration, each in its own transaction; return the version."""
    version = current_version(connection)
    log.info("Current schema version: %d", version)
    log.info("Latest schema version: %d", SCHEMA_VERSION)

    for target in range(version + 1, SCHEMA_VERSION + 1):
        log.info("Migrating to version: %d", target)
        script = MIGRATIONS.get(target)
        if not script:
            raise MigrationError(f"missing migration {target}")
        try:
            connection.executescript(
                "BEGIN;\n"
                f"{script}\n"
                "DELETE FROM schema_version;\n"
                f"INSERT INTO schema_version (version) VALUES ('{target}');\n"
                "COMMIT;"
            )
        except sqlite3.Error as exc:
            if connection.in_transaction:
                connection.rollback()
            raise MigrationError(f"error executing migration for version {target}: {exc}") from exc
        version = target
    return version