"""KeyFetch regional proxy node."""
