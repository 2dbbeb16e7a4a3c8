# chatmesh

Building blocks for a distributed, multi-site chat system. Each site runs a
set of small services that talk over a subject-based message bus and keep
their state in MongoDB. `chatmesh` provides the shared pieces and the
request and event handlers for each service. The handlers take their bus
and store as plain objects, so any client that offers the expected methods
can drive them.

## What is inside

| Module | Purpose |
| --- | --- |
| `chatmesh.errors` | `ChatError`, raised by handlers and helpers, and its subclass `NotFoundError`. |
| `chatmesh.model` | Dataclasses for rooms, messages, subscriptions, users, requests and events; `RoomType` and `Role` enums; JSON encoding (`to_json`, `from_json`), database documents (`to_document`, `from_document`) and RFC 3339 timestamps (`format_time`, `parse_time`). |
| `chatmesh.subject` | Builders for every subject the system uses, wildcard patterns for subscribing, and `parse_user_room_subject`. |
| `chatmesh.stream` | `StreamConfig` layouts for the per-site `MESSAGES`, `FANOUT`, `ROOMS`, `OUTBOX` and `INBOX` streams. |
| `chatmesh.replies` | `marshal_response`, `marshal_error`, `reply_json`, `reply_error` for request/reply handlers, and `HeaderCarrier` for trace headers. |
| `chatmesh.shutdown` | `wait`, which blocks until SIGINT or SIGTERM and then runs cleanup steps in order under a deadline. |
| `chatmesh.mongoutil` | `connect` (opens a client and pings the server) and `disconnect`. |
| `chatmesh.messages` | `MessageHandler`: checks membership, stores a sent message, publishes it for fan-out and replies to the sender. |
| `chatmesh.broadcast` | `BroadcastHandler`: publishes a room metadata update, then delivers the message to a group room's stream or to each DM participant. `MongoRoomLookup` reads rooms and subscriptions. |
| `chatmesh.notification` | `NotificationHandler`: notifies every room member except the sender. `MongoMemberLookup` reads subscriptions. |
| `chatmesh.rooms` | `RoomService`: creates, lists and fetches rooms, and authorises invitations before forwarding them. `MongoRoomStore` stores rooms and subscriptions. |
| `chatmesh.room_worker` | `RoomWorker`: turns forwarded invitations into subscriptions, cross-site outbox events and member notifications. `MongoSubscriptionStore` backs it. |
| `chatmesh.inbox` | `InboxHandler`: applies events arriving from other sites (`member_added`, `room_sync`). `MongoInboxStore` backs it. |
| `chatmesh.history` | `HistoryHandler`: paged message history, limited to messages since the member's history start. |
| `chatmesh.auth` | `AuthHandler`: verifies a login token and issues a signed user credential with scoped permissions; `KeyPair` and `decode_user_claims`. |

## Subjects and streams

```python
from chatmesh import stream, subject

subject.msg_send("u1", "r1", "site-a")
# 'chat.user.u1.room.r1.site-a.msg.send'

subject.parse_user_room_subject("chat.user.u1.request.room.r1.site-a.msg.history")
# ('u1', 'r1')
subject.parse_user_room_subject("chat.user.u1")
# None

cfg = stream.fanout("site-a")
cfg.name      # 'FANOUT_site-a'
cfg.subjects  # ('fanout.site-a.>',)
stream.inbox("site-a").subjects  # ()
```

## Models

```python
from datetime import datetime, timezone
from chatmesh.model import Room, RoomType, from_json, to_json

room = Room(
    id="r1",
    name="general",
    type=RoomType.GROUP,
    created_by="u1",
    site_id="site-a",
    user_count=5,
    created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
)
assert from_json(Room, to_json(room)) == room
```

JSON uses camel-case field names (`roomId`, `userCount`, `createdAt`, ...);
database documents use `_id` for the identifier of rooms, subscriptions and
users. `from_json` raises `ValueError` on malformed input.

## Handlers

Handlers take their collaborators at construction: a store or lookup object
and something to publish with.

```python
from chatmesh.notification import NotificationHandler

class RecordingPublisher:
    def __init__(self):
        self.sent = []

    def publish(self, subj, data):
        self.sent.append((subj, data))

class Members:
    def list_subscriptions(self, room_id):
        return []

handler = NotificationHandler(Members(), RecordingPublisher())
```

Event handlers raise `ChatError` when an event cannot be processed, so a
consumer loop can negatively acknowledge the message and have it
redelivered. Events of unknown type are logged and skipped. Request
handlers (`on_*` methods) reply with `{"error": ...}` instead of raising.
`MessageHandler.handle_jetstream_msg` and `RoomWorker.handle_jetstream_msg`
always acknowledge the message they were given.

## Credentials

```python
from chatmesh.auth import AuthHandler, AuthorizationRequest, KeyPair, decode_user_claims

class Verifier:
    def verify(self, token):
        return "alice"

account = KeyPair.create_account()
user = KeyPair.create_user()
handler = AuthHandler(Verifier(), account)
jwt = handler.handle(AuthorizationRequest(user_nkey=user.public_key(), token="token"))
claims = decode_user_claims(jwt)
claims["nats"]["pub"]["allow"]  # ['chat.user.alice.>', '_INBOX.>']
```

Credentials expire two hours after issue.

## Graceful shutdown

```python
from chatmesh import shutdown

def stop_consuming(deadline):
    ...

def close_connections(deadline):
    ...

shutdown.wait(25.0, stop_consuming, close_connections)
```

`wait` blocks until the process receives SIGINT or SIGTERM, then runs each
step in order. Each step receives a `threading.Event` that is set when the
timeout passes. If the steps have not finished by then, `wait` logs a
warning and returns.

## What it does not do

- There are no commands or long-running services: the package has no bus
  client, no stream consumer loop and no configuration loading. Wire the
  handlers to a client yourself.
- Messages are not stored by this package. `MessageStore` and
  `HistoryStore` are interfaces only; supply an implementation backed by
  your message database.
- There is no single sign-on verifier; `AuthHandler` needs a
  `TokenVerifier` from you.

## Tests

The test suite uses pytest, installed through the `test` extra.