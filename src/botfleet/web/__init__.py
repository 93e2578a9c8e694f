__all__ = ["create_app"]

from botfleet.web.app import create_app
