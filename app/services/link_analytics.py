"""
Short link analytics: click recording (user agent, geolocation, referer) and aggregation.

Responsibility: Own short_link_clicks. Recording never raises, so a click
can be recorded from a background task after the redirect has gone out.
Geolocation uses ip-api.com (free tier, no key); private addresses are skipped.
"""

import ipaddress
import logging
import re
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

import httpx

from app.core.config import GEO_API_TIMEOUT, IP_API_URL
from app.core.db import get_conn, new_id, now_iso
from app.services import links_service

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90, "all": None}

# Upper bound of clicks read for one analytics report
MAX_CLICKS_FOR_ANALYTICS = 10000

_MOBILE = re.compile(r"mobile|android|iphone|ipod|blackberry|opera mini|iemobile")
_TABLET = re.compile(r"tablet|ipad|playbook|silk")


def _version(pattern: str, ua: str) -> str:
    match = re.search(pattern, ua)
    return match.group(1).replace("_", ".") if match else ""


def parse_user_agent(user_agent: str) -> dict[str, str]:
    """Regex-level parse: {browser, browserVersion, os, osVersion, deviceType, deviceBrand}."""
    ua = (user_agent or "").lower()

    device_type = "desktop"
    if _MOBILE.search(ua):
        device_type = "mobile"
    elif _TABLET.search(ua):
        device_type = "tablet"

    browser, browser_version = "Unknown", ""
    if "firefox" in ua:
        browser, browser_version = "Firefox", _version(r"firefox/(\d+)", ua)
    elif "edg/" in ua:
        browser, browser_version = "Edge", _version(r"edg/(\d+)", ua)
    elif "opr/" in ua or "opera" in ua:
        browser, browser_version = "Opera", _version(r"(?:opera|opr)/(\d+)", ua)
    elif "chrome" in ua:
        browser, browser_version = "Chrome", _version(r"chrome/(\d+)", ua)
    elif "safari" in ua:
        browser, browser_version = "Safari", _version(r"version/(\d+)", ua)

    os_name, os_version = "Unknown", ""
    if "windows" in ua:
        os_name = "Windows"
        for marker, version in (("windows nt 10", "10"), ("windows nt 6.3", "8.1"), ("windows nt 6.2", "8"), ("windows nt 6.1", "7")):
            if marker in ua:
                os_version = version
                break
    elif "iphone" in ua or "ipad" in ua:
        os_name, os_version = "iOS", _version(r"os (\d+[._]\d+)", ua)
    elif "mac os x" in ua:
        os_name, os_version = "macOS", _version(r"mac os x (\d+[._]\d+)", ua)
    elif "android" in ua:
        os_name, os_version = "Android", _version(r"android (\d+\.?\d*)", ua)
    elif "linux" in ua:
        os_name = "Linux"

    device_brand = ""
    for marker, brand in (
        ("iphone", "Apple"),
        ("ipad", "Apple"),
        ("mac", "Apple"),
        ("samsung", "Samsung"),
        ("huawei", "Huawei"),
        ("xiaomi", "Xiaomi"),
        ("pixel", "Google"),
    ):
        if marker in ua:
            device_brand = brand
            break

    return {
        "browser": browser,
        "browserVersion": browser_version,
        "os": os_name,
        "osVersion": os_version,
        "deviceType": device_type,
        "deviceBrand": device_brand,
    }


def is_private_ip(ip: str) -> bool:
    """True for loopback/private/reserved addresses and anything that is not an IP."""
    if not ip or ip == "localhost":
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return True
    return addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local


def get_geo_location(ip: str) -> dict[str, Any] | None:
    """ip-api.com lookup. Returns {country, countryCode, city, region, lat, lon} or None."""
    if is_private_ip(ip):
        return None
    try:
        response = httpx.get(
            f"{IP_API_URL}/{ip}",
            params={"fields": "status,country,countryCode,city,region,lat,lon"},
            timeout=GEO_API_TIMEOUT,
        )
        if response.status_code != 200:
            logger.warning("[link_analytics:get_geo_location] status=%s ip=%s", response.status_code, ip)
            return None
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("[link_analytics:get_geo_location] lookup failed ip=%s: %s", ip, e)
        return None
    if data.get("status") == "fail":
        return None
    return {
        "country": data.get("country") or "",
        "countryCode": data.get("countryCode") or "",
        "city": data.get("city") or "",
        "region": data.get("region") or "",
        "lat": data.get("lat") or 0,
        "lon": data.get("lon") or 0,
    }


def parse_referer(referer: str) -> dict[str, str]:
    if not referer:
        return {"referer": "", "refererDomain": ""}
    return {"referer": referer, "refererDomain": urlparse(referer).hostname or ""}


def client_ip(headers: Any) -> str:
    """First X-Forwarded-For hop, else X-Real-IP, else loopback."""
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return forwarded or headers.get("x-real-ip") or "127.0.0.1"


def record_click(
    link_id: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    referer: str | None = None,
    utm: dict[str, str | None] | None = None,
) -> None:
    """
    Insert one click row and bump the link's counters (unique when the IP is new for the link).
    Errors are logged and swallowed: this runs after the redirect response.
    """
    logger.info("[link_analytics:record_click] IN  link=%s", link_id)
    parsed = parse_user_agent(user_agent) if user_agent else {}
    ref = parse_referer(referer or "")
    geo = get_geo_location(ip_address) if ip_address else None
    utm = utm or {}
    try:
        conn = get_conn()
        try:
            seen = (
                ip_address is not None
                and conn.execute(
                    "SELECT 1 FROM short_link_clicks WHERE link_id = ? AND ip_address = ? LIMIT 1",
                    (link_id, ip_address),
                ).fetchone()
                is not None
            )
            conn.execute(
                """
                INSERT INTO short_link_clicks (
                    id, link_id, clicked_at, ip_address, country, country_code, city, region,
                    latitude, longitude, user_agent, device_type, browser, browser_version,
                    os, os_version, device_brand, referer, referer_domain,
                    utm_source, utm_medium, utm_campaign, utm_term, utm_content
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    new_id(),
                    link_id,
                    now_iso(),
                    ip_address,
                    geo["country"] if geo else None,
                    geo["countryCode"] if geo else None,
                    geo["city"] if geo else None,
                    geo["region"] if geo else None,
                    geo["lat"] if geo else None,
                    geo["lon"] if geo else None,
                    user_agent,
                    parsed.get("deviceType"),
                    parsed.get("browser"),
                    parsed.get("browserVersion"),
                    parsed.get("os"),
                    parsed.get("osVersion"),
                    parsed.get("deviceBrand"),
                    ref["referer"],
                    ref["refererDomain"],
                    utm.get("utm_source"),
                    utm.get("utm_medium"),
                    utm.get("utm_campaign"),
                    utm.get("utm_term"),
                    utm.get("utm_content"),
                ),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("[link_analytics:record_click] failed link=%s: %s", link_id, e)
        return
    links_service.increment_clicks(link_id, unique=not seen)
    logger.info("[link_analytics:record_click] OUT link=%s unique=%s", link_id, not seen)


def _since(days: int | None) -> str | None:
    if days is None:
        return None
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def _row_to_click(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "shortLinkId": row["link_id"],
        "clickedAt": row["clicked_at"],
        "ipAddress": row["ip_address"],
        "country": row["country"],
        "countryCode": row["country_code"],
        "city": row["city"],
        "region": row["region"],
        "deviceType": row["device_type"],
        "browser": row["browser"],
        "browserVersion": row["browser_version"],
        "os": row["os"],
        "osVersion": row["os_version"],
        "deviceBrand": row["device_brand"],
        "referer": row["referer"],
        "refererDomain": row["referer_domain"],
        "utmSource": row["utm_source"],
        "utmMedium": row["utm_medium"],
        "utmCampaign": row["utm_campaign"],
    }


def _count_by(clicks: list[sqlite3.Row], column: str) -> list[tuple[str, int]]:
    counts: dict[str, int] = {}
    for c in clicks:
        if c[column]:
            counts[c[column]] = counts.get(c[column], 0) + 1
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)


def get_analytics(link_id: str, period: str = "30d") -> dict[str, Any]:
    """
    Aggregate a link's clicks over 7d / 30d / 90d / all: totalClicks,
    uniqueClicks (distinct IPs), clicksByDay (ascending) and country, device,
    browser and referer breakdowns (descending by clicks).
    """
    since = _since(PERIOD_DAYS.get(period, 30))
    sql = "SELECT * FROM short_link_clicks WHERE link_id = ?"
    params: tuple = (link_id,)
    if since:
        sql += " AND clicked_at >= ?"
        params += (since,)
    conn = get_conn()
    try:
        clicks = conn.execute(sql + " ORDER BY clicked_at DESC LIMIT ?", (*params, MAX_CLICKS_FOR_ANALYTICS)).fetchall()
    finally:
        conn.close()

    by_day: dict[str, int] = {}
    country_codes: dict[str, str | None] = {}
    for c in clicks:
        day = c["clicked_at"][:10]
        by_day[day] = by_day.get(day, 0) + 1
        if c["country"]:
            country_codes.setdefault(c["country"], c["country_code"])

    return {
        "totalClicks": len(clicks),
        "uniqueClicks": len({c["ip_address"] for c in clicks if c["ip_address"]}),
        "clicksByDay": [{"date": d, "clicks": n} for d, n in sorted(by_day.items())],
        "clicksByCountry": [
            {"country": k, "countryCode": country_codes.get(k), "clicks": n} for k, n in _count_by(clicks, "country")
        ],
        "clicksByDevice": [{"deviceType": k, "clicks": n} for k, n in _count_by(clicks, "device_type")],
        "clicksByBrowser": [{"browser": k, "clicks": n} for k, n in _count_by(clicks, "browser")],
        "clicksByReferer": [{"refererDomain": k, "clicks": n} for k, n in _count_by(clicks, "referer_domain")],
    }


def get_recent_clicks(link_id: str, limit: int = 50) -> list[dict[str, Any]]:
    conn = get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM short_link_clicks WHERE link_id = ? ORDER BY clicked_at DESC LIMIT ?",
            (link_id, limit),
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_click(r) for r in rows]


def get_total_clicks_by_brand(brand_id: str) -> int:
    conn = get_conn()
    try:
        row = conn.execute("SELECT COALESCE(SUM(clicks), 0) FROM short_links WHERE brand_id = ?", (brand_id,)).fetchone()
    finally:
        conn.close()
    return row[0]


def get_click_trend(brand_id: str, days: int = 30) -> list[dict[str, Any]]:
    """Clicks per day across the brand's links for the last `days` days, zero-filled, oldest first."""
    start = datetime.now(timezone.utc) - timedelta(days=days)
    conn = get_conn()
    try:
        rows = conn.execute(
            """
            SELECT substr(c.clicked_at, 1, 10) AS day, COUNT(*) AS n
            FROM short_link_clicks c JOIN short_links l ON l.id = c.link_id
            WHERE l.brand_id = ? AND c.clicked_at >= ?
            GROUP BY day
            """,
            (brand_id, start.isoformat()),
        ).fetchall()
    finally:
        conn.close()
    counts = {r["day"]: r["n"] for r in rows}
    today = datetime.now(timezone.utc).date()
    current: date = start.date()
    trend = []
    while current <= today:
        key = current.isoformat()
        trend.append({"date": key, "clicks": counts.get(key, 0)})
        current += timedelta(days=1)
    return trend


def period_days(period: str) -> int:
    """Day span for daily/trend views; "all" is capped to a year."""
    days = PERIOD_DAYS.get(period, 30)
    return 365 if days is None else days
