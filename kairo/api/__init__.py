"""HTTP and WebSocket front end for the agent manager."""
