"""notion-tui: resilient, rate-limited access to the Notion API.

Provides a token-bucket gated Notion client, an error-classifying retry
executor and a durable file cache used by the terminal client.
"""

__version__ = "0.1.0"
