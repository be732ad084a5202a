"""Infrastructure adapters: sqlite persistence, Omada HTTP access, observability."""
