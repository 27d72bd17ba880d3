"""Collector test suite.

- unit/: one module per library component and per Bitbucket Server collector
- helpers.py: in-process HTTP handler, paged response and seed table builders
"""
