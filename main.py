from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import os

from core.config import logger, STATIC_DIR, s3, R2_BUCKET  # type: ignore

# Routers
from routers import galleries, photos, share, upload, viewer  # type: ignore

app = FastAPI(title="Frameport")

# ---- CORS setup ----
_default_origins = ",".join([
    "http://localhost:3000",
    "http://127.0.0.1:3000",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or os.getenv("FRONTEND_ORIGIN") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


app.include_router(upload.router)
app.include_router(photos.router)
app.include_router(galleries.router)
app.include_router(viewer.router)
app.include_router(share.router)

# Local fallback storage is served from /static when R2 is not configured
if not (s3 and R2_BUCKET):
    os.makedirs(STATIC_DIR, exist_ok=True)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    logger.info(f"Serving local storage from {STATIC_DIR}")


@app.get("/api/health")
async def health():
    return {"ok": True, "storage": "r2" if (s3 and R2_BUCKET) else "local"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
