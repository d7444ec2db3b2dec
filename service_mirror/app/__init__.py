"""
Mirror Service package.

Keeps a local, reactive mirror of a remote keyed collection:

- app.main: FastAPI app exposing the mirror over HTTP and SSE
- app.store: Snapshot store and replay-latest live stream
- app.sync: Sync engine running CRUD calls and merging their results
- app.lookup: Bounded lookup that waits for one item to appear
- app.adapters: HTTP transport to the remote collection
- app.models: Item and snapshot types
"""
