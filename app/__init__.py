"""Table query service: configurable SQL tables with record-scoped merge fields."""
