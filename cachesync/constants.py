"""
cachesync Global Constants
"""

APP_NAME = "cachesync"
APP_VERSION = "0.1.0"
