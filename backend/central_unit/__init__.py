"""
Roadway Accident Central Unit
Backend Application Package

Receives accident detections from edge nodes, works out which lanes are
blocked, recommends a lane layout and speed limit, waits for an operator
decision and pushes the result back to the road.
"""

__version__ = "1.0.0"
