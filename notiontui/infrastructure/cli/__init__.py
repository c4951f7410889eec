"""Terminal output adapters (rich)."""
