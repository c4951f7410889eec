"""Domain models: value objects and small data structures."""
