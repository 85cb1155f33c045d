"""Unit tests for Script Layers.

Fast, isolated tests for individual components.
No network (requests is monkeypatched); files only in temp directories.
"""
