"""Content and task creation workflows."""
