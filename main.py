from fastapi import FastAPI

from auth_router import router as auth_router
from auth_service import DEV_SKIP_AUTH, ensure_dev_user
from catalog_router import router as catalog_router
from db import connect_db
from db_migrations import apply_migrations
from saves_router import router as saves_router

app = FastAPI(title="Qi Ascension save store")
app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(saves_router)


@app.on_event("startup")
def _startup():
    conn = connect_db()
    try:
        apply_migrations(conn)
        if DEV_SKIP_AUTH:
            ensure_dev_user(conn)
        conn.commit()
    finally:
        conn.close()
