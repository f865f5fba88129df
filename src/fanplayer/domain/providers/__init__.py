"""Catalog providers backing the remote playback device."""
