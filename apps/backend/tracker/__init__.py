"""Coding-problem tracker backend with a fixed-interval review scheduler."""
