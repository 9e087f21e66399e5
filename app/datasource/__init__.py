"""Data source adapter: schema discovery, record lookup and query execution."""
