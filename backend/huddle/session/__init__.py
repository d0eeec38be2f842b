"""Real-time sessions over WebSocket.

Identity mapping, the connection hub, relay dispatch and the session
coordinator that ties them to the room registry.
"""
