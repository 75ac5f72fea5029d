"""HTTP access to the chat backend.

Endpoints consumed:
    - POST /sessions: Create a session
    - GET /sessions/{id}/messages: Session message history
    - POST /chat/stream: Chat completion as a server-sent event stream
    - GET /documents/sessions/{id}: Documents of a session
    - POST /documents/upload: Upload a document into a session
    - DELETE /documents/{id}: Delete a document
    - GET /health: Backend health status
"""

from ragchat.api.client import ApiClient

__all__ = ["ApiClient"]
