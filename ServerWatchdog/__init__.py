"""
Server Watchdog

Sidecar that runs next to a game server inside an ECS task. It works out which
edition the server speaks, points DNS at the task, and scales the service back
down to 0 once nobody is connected anymore.
"""
