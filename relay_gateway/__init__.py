"""
Relay Gateway - WebSocket to MQTT packet relay for the arm.

This module runs next to the MQTT broker and:
- Accepts WebSocket connections from teleop clients
- Validates every command record
- Publishes records to MQTT for the controller board bridge
"""

__version__ = "1.0.0"
