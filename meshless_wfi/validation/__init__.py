"""Consistency checks between the mesh and direct integration paths."""
