import uuid


def generate_session_id() -> str:
    """New session identifier, e.g. 'session-1f0c2a9e4b7d4c3e9a51d6b0e2f7c8a1'."""
    return f"session-{uuid.uuid4().hex}"
