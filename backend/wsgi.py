# backend/wsgi.py
from foodops import create_app

app = create_app()
