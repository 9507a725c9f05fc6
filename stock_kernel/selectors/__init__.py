"""Read-side selectors.  Selectors never mutate data and return DTOs."""
