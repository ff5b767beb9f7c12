"""Open Oracle Poster."""
