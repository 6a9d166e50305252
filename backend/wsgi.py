# backend/wsgi.py
from voltshop import create_app

app = create_app()
