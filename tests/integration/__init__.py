"""Integration tests for components working together.

Coverage:
    - ApiClient request shapes and error mapping
    - Full chat workflow from send to finished answer, through real
      chunked HTTP responses served by the fake backend
"""
