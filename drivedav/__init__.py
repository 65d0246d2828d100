"""
drivedav: WebDAV gateway for key-addressed drives
Built with FastAPI + Uvicorn
"""

__version__ = "1.2.2"
__author__ = "drivedav"
__description__ = "Expose a key-value drive as a WebDAV share for desktop file managers"
