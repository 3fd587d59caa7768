"""Test helpers: stream factories and toy entry points."""
