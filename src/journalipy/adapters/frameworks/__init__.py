"""Framework adapters exposing a namespace over HTTP."""
