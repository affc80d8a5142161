"""Bookshelf — authors, books and genres backend."""
