"""State, persistence and trade journaling."""
