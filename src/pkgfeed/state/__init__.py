"""State layer.

This package is the single source of truth for how graph store
notifications are reconciled into package watch state and the item feed.
Only the registry mutates package state and only the item feed mutates
item state.
"""
