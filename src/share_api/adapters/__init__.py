"""
Adapter layer for the Share API.

Contains the local filesystem storage and the display-name side-index that
the file registry reconciles against.
"""
