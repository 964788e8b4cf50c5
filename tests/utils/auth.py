from __future__ import annotations

from cropscan.config import Settings


def build_auth_headers(
    user_id: int | str = 1,
    *,
    api_key: str | None = None,
    api_ver: str | None = "v1",
) -> dict[str, str]:
    headers = {
        "X-API-Key": api_key or Settings().api_key,
        "X-User-ID": str(user_id),
    }
    if api_ver is not None:
        headers["X-API-Ver"] = api_ver
    return headers
