"""Development entrypoint: python main.py"""

import os

from backend.main import create_app

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    # For local dev, you can use flask's builtin server.
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_ENV") != "production")
