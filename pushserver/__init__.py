"""Push server — FastAPI glue around the push kernel."""
