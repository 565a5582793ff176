"""
asgi.py -- Application assembly for piccolo-share.

Joins the app from api/main.py (lifespan, middleware, exception handlers)
with the HTML routes from web/routes.py. web/ only reaches into api/ for the
shared rate limiter.

Run with:  python main.py
           uvicorn asgi:app --port 8080
"""

from api.main import app
from web.routes import router as web_router

# The web router ends with a catch-all route, so it must be included last.
app.include_router(web_router)
