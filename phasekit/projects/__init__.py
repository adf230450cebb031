"""Built-in workflow types: standard, design, exploration, breakdown."""
