"""Venue connectivity, level normalization and the book store."""
