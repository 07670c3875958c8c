"""In-memory stand-in for the identity/billing service."""
