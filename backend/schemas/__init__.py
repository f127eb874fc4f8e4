"""
Canonical schemas for flow graphs, layouts and simulation state.
"""
