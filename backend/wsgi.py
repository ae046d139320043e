# backend/wsgi.py
import os

from venuepos import create_app
from venuepos.extensions import socketio

app = create_app()


if __name__ == "__main__":
    socketio.run(
        app,
        host=os.environ.get("VENUEPOS_HOST", "0.0.0.0"),
        port=int(os.environ.get("VENUEPOS_PORT", "5000")),
        allow_unsafe_werkzeug=True,
    )
