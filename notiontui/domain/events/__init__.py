"""Domain Event definitions.

Represents significant occurrences around remote API calls (deferrals,
retries, failures) that observers such as logging can react to.
"""
