"""Request helpers and standardised error responses."""
