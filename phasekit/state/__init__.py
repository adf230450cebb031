"""Project data model, model operations, guards and persistence."""
