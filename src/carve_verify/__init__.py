"""carve verify - Integrity predicate and audit reports."""
