"""Adapters: stores, authenticators, the logging bridge and the HTTP surface."""
