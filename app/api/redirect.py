"""
Public short link redirects: /l/{code} and the password prompt for protected links.

Mounted at the application root, outside /api.
"""

import html
import logging
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from app.core.errors import NotFoundError, UnauthorizedError
from app.services import link_analytics, links_service

logger = logging.getLogger(__name__)
redirect_router = APIRouter(tags=["redirect"])

NOT_FOUND_PATH = "/link-not-found"
EXPIRED_PATH = "/link-expired"
ERROR_PATH = "/link-error"
PASSWORD_PATH = "/l/password"

_PASSWORD_PAGE = """<!doctype html>
<html><head><meta charset="utf-8"><title>Protected link</title></head>
<body>
<form method="post" action="/l/password">
<p>This link is password protected.</p>
{error}
<input type="hidden" name="code" value="{code}">
<input type="password" name="password" autofocus required>
<button type="submit">Continue</button>
</form>
</body></html>
"""


def _request_utm(request: Request) -> dict[str, str | None]:
    return {f: request.query_params.get(f) for f in links_service.UTM_FIELDS if request.query_params.get(f)}


def _schedule_click(background: BackgroundTasks, request: Request, link: dict) -> None:
    background.add_task(
        link_analytics.record_click,
        link["id"],
        link_analytics.client_ip(request.headers),
        request.headers.get("user-agent"),
        request.headers.get("referer"),
        _request_utm(request),
    )


def _password_page(code: str, error: str | None = None, status_code: int = 200) -> HTMLResponse:
    error_html = f"<p>{html.escape(error)}</p>" if error else ""
    return HTMLResponse(_PASSWORD_PAGE.format(code=html.escape(code, quote=True), error=error_html), status_code=status_code)


@redirect_router.get(PASSWORD_PATH, summary="Password prompt for a protected link", response_class=HTMLResponse)
def password_prompt(code: str = ""):
    if not code:
        return RedirectResponse(NOT_FOUND_PATH, status_code=302)
    return _password_page(code)


@redirect_router.post(PASSWORD_PATH, summary="Submit a link password")
def password_submit(
    request: Request,
    background: BackgroundTasks,
    code: str = Form(""),
    password: str = Form(""),
):
    try:
        link = links_service.verify_link_password(code, password)
    except NotFoundError:
        return RedirectResponse(NOT_FOUND_PATH, status_code=302)
    except UnauthorizedError as e:
        return _password_page(code, e.message, status_code=401)
    if links_service.is_expired(link):
        return RedirectResponse(EXPIRED_PATH, status_code=302)
    _schedule_click(background, request, link)
    return RedirectResponse(
        links_service.build_destination_url(link["destinationUrl"], links_service.link_utm(link)),
        status_code=302,
    )


@redirect_router.get("/l/{code}", summary="Follow a short link")
def follow_link(code: str, request: Request, background: BackgroundTasks) -> RedirectResponse:
    """
    302 to the destination (link UTM parameters appended) and record the click
    after the response. Dead links go to the not-found page, expired ones to the
    expired page and protected ones to the password prompt.
    """
    try:
        outcome, link = links_service.resolve_redirect(code)
    except Exception:
        logger.exception("[redirect:follow_link] lookup failed code=%s", code)
        return RedirectResponse(ERROR_PATH, status_code=302)
    logger.info("[redirect:follow_link] code=%s outcome=%s", code, outcome)
    if outcome == "not_found":
        return RedirectResponse(NOT_FOUND_PATH, status_code=302)
    if outcome == "expired":
        return RedirectResponse(EXPIRED_PATH, status_code=302)
    if outcome == "password":
        return RedirectResponse(f"{PASSWORD_PATH}?code={quote(code)}", status_code=302)
    _schedule_click(background, request, link)
    return RedirectResponse(
        links_service.build_destination_url(link["destinationUrl"], links_service.link_utm(link)),
        status_code=302,
    )
