"""
Core modules for Jevons.

This package contains the scope tree, time range resolution, usage
aggregation and the query service built on top of them.
"""
