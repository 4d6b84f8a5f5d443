# vpub

vpub holds the working parts of a small message board. Content is
organised as forums, which hold boards, which hold topics, which hold
posts. Users register with a one-time key, write posts in a lightweight
markup, and the site, a board or a topic can be published as an Atom
feed. Everything is kept in a SQLite database.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

| Module            | What it provides                                                        |
|-------------------|-------------------------------------------------------------------------|
| `vpub.models`     | dataclasses: `User`, `Forum`, `Board`, `Topic`, `Post`, `Key`, `Settings` and the `*Request` records |
| `vpub.config`     | `Config.from_env()` reading settings from the environment               |
| `vpub.database`   | `connect()`, `migrate()`, `current_version()` and the `StoreError` family |
| `vpub.catalog`    | `CatalogStore`: forums, boards, registration keys and site settings     |
| `vpub.accounts`   | `UserStore` and `hash_password()`: accounts and password checks         |
| `vpub.content`    | `ContentStore`: topics and posts, with paging                           |
| `vpub.validation` | `validate_*` functions raising `ValidationError`                        |
| `vpub.forms`      | form dataclasses built from submitted fields with `from_form()`         |
| `vpub.markup`     | `convert()`: post markup to HTML                                        |
| `vpub.feeds`      | `site_feed()`, `board_feed()`, `topic_feed()` and the `Feed` document   |
| `vpub.helpers`    | `Pagination`, `Navigation`, `time_ago()`, `forums_from_boards()`, `route_id()`, `page_from_query()` |

## Configuration

`Config.from_env()` reads these variables (from `os.environ` unless a
mapping is passed):

| Variable       | Field          | Default |
|----------------|----------------|---------|
| `DATABASE_URL` | `database_url` | empty   |
| `PORT`         | `port`         | `8080`  |
| `SESSION_KEY`  | `session_key`  | empty   |
| `CSRF_KEY`     | `csrf_key`     | empty   |
| `CSRF_SECURE`  | `csrf_secure`  | true only for the value `true` |
| `TITLE`        | `title`        | empty   |

## Storage

`connect()` takes a file path or a `sqlite:///` URL (an empty one opens
an in-memory database). `migrate()` applies every pending schema version,
each in its own transaction, and returns the version reached. A fresh
schema holds the default settings (site name `vpub`, 50 items per page)
and one unused registration key, `admin`.

```python
from vpub.accounts import UserStore
from vpub.catalog import CatalogStore
from vpub.content import ContentStore
from vpub.database import connect, migrate
from vpub.models import BoardRequest, ForumRequest, TopicRequest, UserCreationRequest

connection = connect("sqlite:///forum.db")
migrate(connection)

catalog = CatalogStore(connection)
forum_id = catalog.create_forum(ForumRequest(name="General"))
board_id = catalog.create_board(
    BoardRequest(name="Chat", description="Anything goes", forum_id=forum_id)
)

password = "password"
users = UserStore(connection)
user_id = users.create_user("admin", UserCreationRequest(name="alice", password=password))

content = ContentStore(connection)
topic_id = content.create_topic(
    user_id, TopicRequest(board_id=board_id, subject="Hello", content="First post")
)
topics, has_more = content.topics_by_board_id(board_id, 1)
```

Lookups of missing records raise `NotFoundError`; failed writes raise
`StoreError`. `UserStore.verify_user()` raises `UserNotFound` or
`WrongPassword`, and `create_user()` raises `UserExists` for a taken
name. Replies to locked topics, boards or forums are refused unless the
author is an administrator.

## Markup

```python
from vpub.markup import convert

convert("**bold** and ~~struck~~", True)
```

The markup supports `#` headings (rendered one level down, so `#` is
`<h2>`), `*` bullet lists, `> ` quotes, fenced code blocks, `----` rules,
`[text](url)` links, `![alt](url)` images, bare URLs, `**bold**`,
`*italics*`, `` `code` ``, `~~strikethrough~~` and pipe tables. Text is
HTML-escaped before decoration is applied. Pass `False` as the second
argument to leave lines unwrapped by `<p>`.

## Validation

```python
from vpub.models import PostRequest
from vpub.validation import ValidationError, validate_post_request

try:
    validate_post_request(PostRequest(subject="Hello", content=""))
except ValidationError as error:
    print(error)  # Post content can't be empty
```

## Feeds

`site_feed(content, settings)`, `board_feed(content, settings, board_id)`
and `topic_feed(content, settings, topic_id)` take a `ContentStore` and
the `Settings` from `CatalogStore.settings()`, and return a `Feed` whose
`to_xml()` gives the Atom document.

## What is not included

vpub has no web server, HTML pages, sessions, stylesheet or
command-line program. It does not create an administrator account or
example content on its own. It provides the storage, rules, markup and
feeds that such a front end would be built on.