"""
ASGI entrypoint: expose `app` pour les process managers (uvicorn, gunicorn -k uvicorn.workers.UvicornWorker).
Toute la configuration est centralisée dans farmvet.app_setup.factory.
"""
from farmvet.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run("farmvet.asgi:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
