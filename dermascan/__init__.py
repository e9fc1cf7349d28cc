"""
DermaScan skin assessment client

Captures a facial image, sends it to Gemini for a structured diagnosis and
serves the Login, Dashboard, Scanner and Results screens over HTTP.
"""

__version__ = "1.0.0"
