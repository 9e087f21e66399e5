"""Table configuration, query compilation, merge-field resolution and rendering."""
