import os

from dbr_planner import create_app

app = create_app()

if __name__ == "__main__":
    # Development server only; use wsgi.py behind gunicorn elsewhere
    app.run(debug=True, port=int(os.environ.get("PORT", "8000")))
