from dbr_planner import create_app

app = create_app()

# gunicorn -w 2 wsgi:app
# Full passes are serialised per process; run the periodic pass (DBR_AUTO_RUN_MINUTES)
# on a single worker only.
