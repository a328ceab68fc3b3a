import hmac
from typing import Optional
from fastapi import HTTPException, Request
from core.config import logger, FRAMEPORT_API_TOKEN


def get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def require_api_token(request: Request):
    """
    FastAPI dependency guarding photographer-side routes.
    Photographer identity lives with the auth provider; this backend only
    checks the shared API token when FRAMEPORT_API_TOKEN is configured.
    """
    if not FRAMEPORT_API_TOKEN:
        return
    token = get_bearer_token(request)
    if not token or not hmac.compare_digest(token, FRAMEPORT_API_TOKEN):
        logger.warning(f"Rejected API call to {request.url.path}: bad or missing token")
        raise HTTPException(status_code=401, detail="Unauthorized")
