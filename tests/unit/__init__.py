"""Unit tests for individual components in isolation.

Coverage:
    - streaming/: FrameDecoder, event interpretation, ConversationAccumulator
    - session/: SessionLifecycleManager and storage ports
    - documents/: DocumentCache and upload validation
    - config: environment-driven ClientConfig

Time is driven by a manual clock so expiry tests never sleep.
"""
