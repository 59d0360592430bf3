"""Player documents, admin service and routes."""
