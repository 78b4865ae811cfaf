# simpanan

A small local HTTP workspace for `.simp` query files. It runs a server
on `127.0.0.1`, keeps every open file in memory, tells each connected
client about changes through a Server-Sent Events stream, and writes a
recovery file on shutdown so the next launch picks up where you left
off.

## Installing

```
pip install .
```

## Running

```
simpanan-webui
simpanan-webui --port 8000
```

The server listens on port 7467 by default (S=7 I=4 M=6 P=7 on a phone
keypad) and prints its address on stderr. If the port cannot be bound,
it stops at once with a `LaunchAborted:` message and exit status 1.

On start it restores the previous session from
`~/.local/share/nvim/simpanan_webui_recovery.json`, re-reading each
file from disk so that files changed or deleted in the meantime show
up as `modified`. A corrupt recovery file only produces a warning.
Ctrl-C (or SIGTERM) stops the server and flushes all open buffers back
to that recovery file.

## HTTP surface

| Method | Path                       | Purpose                                        |
|--------|----------------------------|------------------------------------------------|
| any    | `/health`                  | `{"server", "status", "port"}`                 |
| GET    | `/api/files`               | open files and the active path                 |
| GET    | `/api/files/get?path=...`  | one open file's full state                     |
| POST   | `/api/files/open`          | open a `.simp` file (`{"path": ...}`)          |
| POST   | `/api/files/close`         | close an open file (`{"path": ...}`)           |
| POST   | `/api/files/save`          | write the buffer to disk (`{"path": ...}`)     |
| POST   | `/api/files/edit`          | `{"path", "buffer_contents", "cursor_byte_offset"}` |
| POST   | `/api/files/switch-active` | make another open file active (`{"path": ...}`) |
| GET    | `/api/events`              | SSE stream of bus events                       |

An open file is reported as
`{"path", "disk_contents", "buffer_contents", "cursor_byte_offset", "status"}`
with `status` either `clean` or `modified`. The first file opened
becomes active; closing the active file promotes another open one.

Errors come back as `{"error": "..."}`: 400 for an invalid JSON body,
an empty path or a path not ending in `.simp`; 404 for a missing or
unopened file; 409 for a file that is already open. A wrong method
gives 405 and an unknown path 404.

The event stream begins with a `: connected` comment, then sends one
`data: {"type": ..., "payload": ...}` line per event, with types
`file_opened`, `buffer_updated`, `file_saved`, `file_closed` and
`active_switched`. Every connected client receives every event,
including its own; a client whose 16-event inbox is full misses events
rather than holding up the others.

## Using it from Python

```python
from simpanan.openfile import BufferStore

store = BufferStore()
f = store.open("queries/report.simp")
store.edit(f.path, "|pg> SELECT 2", 12)
store.save(f.path)
print(store.active, [o.status for o in store.list_files()])
```

Store failures raise subclasses of `BufferStoreError`:
`EmptyPathError`, `NotSimpFileError`, `PathNotFoundError`,
`AlreadyOpenError` and `FileNotOpenError`. `flush_recovery()` and
`load_recovery()` write and read the recovery file.

`simpanan.eventbus.EventBus` is the fan-out broker behind the event
stream:

```python
from simpanan.eventbus import Event, EventBus, EventType

bus = EventBus()
with bus.subscribe() as sub:
    bus.publish(Event(EventType.FILE_SAVED, {"path": "a.simp"}))
    print(sub.get(timeout=1).to_dict())
```

`simpanan.server.Server` runs the whole thing; `start()` blocks until
a signal or `shutdown()`:

```python
from simpanan.server import Server

Server(7467).start()
```

## What it does not do

This package is only the file-buffer and event side of the workspace.
It does not serve a browser page or static assets (`/` answers 404),
does not manage database connections, does not run queries, and does
not offer completion suggestions.

## Tests

```
pip install .[test]
pytest
```