"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (Notion API, file system,
terminal) by implementing the interfaces defined in the domain layer.
"""
