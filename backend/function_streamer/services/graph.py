from typing import Optional, Union

import httpx

from ..config import Settings, load_settings
from ..errors import GraphRequestError


async def graph_request(
    secret_token: str,
    request_body: Union[bytes, str, None],
    *,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> str:
    """POST ``request_body`` to the Graph API once and return the response text.

    Any status other than 200 raises GraphRequestError carrying the status.
    """
    settings = settings or load_settings()
    if isinstance(request_body, str):
        body = request_body.encode("utf-8")
    else:
        body = bytes(request_body or b"")

    url = f"https://{settings.graph_host}/graphql"
    params = {"app_id": settings.site_id or ""}
    headers = {
        "Authorization": f"Bearer {secret_token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Content-Length": str(len(body)),
    }

    if client is not None:
        response = await client.post(url, params=params, headers=headers, content=body)
    else:
        async with httpx.AsyncClient() as own_client:
            response = await own_client.post(url, params=params, headers=headers, content=body)

    if response.status_code != 200:
        raise GraphRequestError(response.status_code)
    return response.text
