"""Test package for wa-embed."""
