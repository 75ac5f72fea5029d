"""ragchat - streaming client for a remote chat / RAG service.

Talks to the backend over HTTP, decodes its server-sent event stream into a
growing answer with citations, and keeps session and document state locally.

Components:
    - api: HTTP client for sessions, chat streaming and documents
    - streaming: frame decoding, event interpretation and answer accumulation
    - session: active session persistence with sliding expiry
    - documents: per-session document list cache
    - chat: send orchestration and message history
    - ui: NiceGUI presentation layer
    - models: Pydantic data models
"""

__version__ = "0.1.0"
