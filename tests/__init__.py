"""Test package for the RAG chat client.

Structure:
    - unit/: Stream decoding, event interpretation, accumulation, sessions,
      document cache and config in isolation
    - integration/: ApiClient and ChatService against a fake backend

The backend is replaced by an in-process httpx.MockTransport (tests/fakes.py).
No network access is needed.
"""
