"""Canvas repositories."""
from canvas.repositories.session_store import (
    SessionStore,
    InMemorySessionStore,
    JsonFileSessionStore,
    DatabaseSessionStore,
    build_session_store,
)
