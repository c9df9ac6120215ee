"""HTTP and websocket routers of the Palaver API."""
