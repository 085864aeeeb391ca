"""
Arm Teleop - Hand-pose teleoperation client for a 4-axis servo arm.

This package turns MediaPipe hand landmarks into smoothed, deadbanded
servo commands (base, shoulder, elbow, gripper) and writes them as
fixed-width ASCII packets to a controller board over BLE UART or through
the relay gateway over WebSocket.
"""

__version__ = "1.0.0"
