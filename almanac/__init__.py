"""Almanac: dated historical events catalog with synchronized full-text search."""
