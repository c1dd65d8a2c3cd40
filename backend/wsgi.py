"""WSGI entrypoint; `python wsgi.py` serves the API on PORT for local runs."""

from notes_lite import create_app
from notes_lite.config import Config

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=Config.PORT, debug=Config.DEBUG)
