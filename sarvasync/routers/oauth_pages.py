# sarvasync/routers/oauth_pages.py
"""Popup pages returned by provider callbacks; they report back to the opener window."""
import json
from urllib.parse import urlencode

from fastapi.responses import HTMLResponse

from sarvasync.config import get_settings

_PAGE = """<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body>
<p>{title}</p>
<script>
  if (window.opener) {{
    window.opener.postMessage({message}, '*');
    window.close();
  }} else {{
    window.location.href = {fallback};
  }}
</script>
</body>
</html>
"""


def _connections_url(**params) -> str:
    return f"{get_settings().CORS_ORIGIN.rstrip('/')}/dashboard/connections?{urlencode(params)}"


def _render(title: str, message: dict, fallback: str, status_code: int) -> HTMLResponse:
    # json.dumps output is embedded in a script block; "</" must not close it early
    message_js = json.dumps(message).replace("</", "<\\/")
    fallback_js = json.dumps(fallback).replace("</", "<\\/")
    return HTMLResponse(
        _PAGE.format(title=title, message=message_js, fallback=fallback_js),
        status_code=status_code,
    )


def oauth_success_page(provider: str) -> HTMLResponse:
    return _render(
        "Account connected",
        {"type": "OAUTH_SUCCESS", "payload": {"provider": provider}},
        _connections_url(linked=provider),
        200,
    )


def oauth_error_page(provider: str, error: str, status_code: int = 400) -> HTMLResponse:
    return _render(
        "Connection failed",
        {"type": "OAUTH_ERROR", "payload": {"provider": provider, "error": error}},
        _connections_url(error=error),
        status_code,
    )
