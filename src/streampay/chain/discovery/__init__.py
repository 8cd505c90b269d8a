"""Stream indexer (GraphQL) client."""
