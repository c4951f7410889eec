"""Domain Layer: value objects, events, errors and interfaces (ports).

Has no dependency on infrastructure; everything here is plain Python.
"""
