"""State machine engine, project type configuration and the type registry."""
