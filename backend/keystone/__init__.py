"""Keystone: CPM scheduling over a WBS task hierarchy."""
