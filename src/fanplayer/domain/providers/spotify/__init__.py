"""
Spotify provider for fanplayer.

Web API player transport, Connect device adapter and access token refresh.
"""
