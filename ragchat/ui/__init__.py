"""NiceGUI interface - thin presentation layer over the client core.

Responsibilities:
    - Chat panel with the streamed answer and its citations
    - Document panel with upload, delete and refresh
    - New chat and session expiry display

Holds no protocol logic. Delegates to ChatService and DocumentCache.
"""
