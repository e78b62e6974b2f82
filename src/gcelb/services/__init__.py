"""Compute Engine services composing and reading load balancers."""
