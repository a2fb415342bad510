"""
asgi.py -- Application assembly for jwt-users.

Builds the default application: a SqlUserCollection on USERS_DB_URL and
file-backed signing secrets under SECRETS_DIR, both from core.config.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import create_app

app = create_app()
