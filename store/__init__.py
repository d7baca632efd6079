"""Remote record store: REST client, change feed, and cached repository."""
