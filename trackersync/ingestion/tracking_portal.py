"""
Tracking portal feed.

The GPS provider only exposes an ASP.NET web portal, so devices are
discovered by logging in with a form post, locating the device list page
and parsing it. Two page layouts are understood:

- rows tagged with data-plate / data-tracker / data-lat / data-lon / data-addr
- a plain table whose header row names the plate and tracker columns
  (English or Arabic headers)
"""

import logging
import re

import httpx
from bs4 import BeautifulSoup

from trackersync.config import settings
from trackersync.errors import FeedError
from trackersync.ingestion.base import DeviceFeed
from trackersync.schemas.sync import DeviceRecord
from trackersync.utils.scraping import clean_text, default_headers, parse_number, request_with_retry

logger = logging.getLogger(__name__)

_ASPNET_FIELDS = ("__VIEWSTATE", "__EVENTVALIDATION", "__VIEWSTATEGENERATOR", "__EVENTTARGET", "__EVENTARGUMENT")

_USERNAME_FIELDS = ["UserName", "username", "txtUserName", "Login1$UserName"]
_PASSWORD_FIELDS = ["Password", "password", "txtPassword", "Login1$Password"]
_SUBMIT_FIELDS = ["btnLogin", "LoginButton", "Login1$LoginButton"]

HOME_PATHS = ["/Default.aspx", "/", "/Home.aspx", "/Dashboard.aspx"]
DEVICE_PAGE_PATHS = [
    "/Devices.aspx",
    "/Default.aspx",
    "/Fleet/Devices.aspx",
    "/VehicleList.aspx",
    "/Tracking/Devices.aspx",
    "/Assets.aspx",
]

_DEVICE_LINK_HINT = re.compile(
    r"device|devices|tracker|vehicle|fleet|asset|imei|gps|تتبع|جهاز|أجهزة|مركبة|المركبات|الأسطول", re.IGNORECASE
)
_DEVICE_PAGE_HINT = re.compile(r"plate|imei|device|tracker|لوحة|رقم|جهاز|تتبع", re.IGNORECASE)
_LOGIN_FAILED_HINT = re.compile(r"invalid|incorrect|غير صحيح|خطأ", re.IGNORECASE)

HEADER_KEYS = {
    "plate": ["plate", "لوحة", "رقم اللوحة", "plate number", "vehicle", "المركبة"],
    "tracker": ["tracker", "imei", "device", "جهاز", "المتتبع"],
    "lat": ["latitude", "lat", "خط العرض", "إحداثيات"],
    "lon": ["longitude", "lng", "lon", "خط الطول"],
    "addr": ["address", "العنوان", "location", "الموقع"],
}


def _find_header_index(headers: list[str], keys: list[str]) -> int:
    """Index of the first header equal to any key, else containing one (-1 if none)."""
    lowered = [h.lower() for h in headers]
    keys = [k.lower() for k in keys]
    for key in keys:
        if key in lowered:
            return lowered.index(key)
    for key in keys:
        for i, h in enumerate(lowered):
            if key in h:
                return i
    return -1


def _make_device(plate, tracker_id, lat=None, lon=None, address=None) -> DeviceRecord | None:
    plate = clean_text(plate)
    tracker_id = clean_text(tracker_id)
    if not plate or not tracker_id:
        return None
    if lat is None or lon is None:
        lat = lon = None
    return DeviceRecord(
        tracker_id=tracker_id,
        raw_plate=plate,
        latitude=lat,
        longitude=lon,
        address=clean_text(address) or None,
    )


def _parse_attribute_rows(soup: BeautifulSoup) -> list[DeviceRecord]:
    devices = []
    for row in soup.select("tr[data-plate][data-tracker]"):
        device = _make_device(
            row.get("data-plate"),
            row.get("data-tracker"),
            parse_number(row.get("data-lat")),
            parse_number(row.get("data-lon")),
            row.get("data-addr"),
        )
        if device:
            devices.append(device)
    return devices


def _parse_tables(soup: BeautifulSoup) -> list[DeviceRecord]:
    for table in soup.find_all("table"):
        rows = table.find_all("tr")
        if len(rows) < 2:
            continue
        headers = [clean_text(c.get_text()) for c in rows[0].find_all(["th", "td"])]
        cols = {name: _find_header_index(headers, keys) for name, keys in HEADER_KEYS.items()}
        if cols["plate"] == -1 or cols["tracker"] == -1:
            continue

        devices = []
        for row in rows[1:]:
            cells = [clean_text(c.get_text()) for c in row.find_all(["th", "td"])]
            if len(cells) <= max(cols["plate"], cols["tracker"]):
                continue

            def cell(name):
                i = cols[name]
                return cells[i] if 0 <= i < len(cells) else None

            device = _make_device(
                cell("plate"),
                cell("tracker"),
                parse_number(cell("lat")),
                parse_number(cell("lon")),
                cell("addr"),
            )
            if device:
                devices.append(device)
        # first table that yields devices wins
        if devices:
            return devices
    return []


def parse_devices_html(html: str) -> list[DeviceRecord]:
    """Parse a device list page. Deduplicated by (plate, tracker_id), page order kept."""
    soup = BeautifulSoup(html, "html.parser")
    found = _parse_attribute_rows(soup) + _parse_tables(soup)
    unique: dict[tuple[str, str], DeviceRecord] = {}
    for device in found:
        unique.setdefault((device.raw_plate, device.tracker_id), device)
    return list(unique.values())


def extract_hidden_fields(soup: BeautifulSoup) -> dict[str, str]:
    """ASP.NET state fields that must be echoed back with the login post."""
    fields = {}
    for name in _ASPNET_FIELDS:
        tag = soup.find("input", attrs={"name": name})
        if tag is not None and tag.get("value") is not None:
            fields[name] = tag["value"]
    return fields


def find_input_name(soup: BeautifulSoup, candidates: list[str]) -> str | None:
    """Name of the first input whose name or id contains one of the candidates."""
    inputs = soup.find_all("input")
    for cand in candidates:
        needle = cand.lower()
        for tag in inputs:
            name = tag.get("name") or ""
            ident = tag.get("id") or ""
            if needle in name.lower() or needle in ident.lower():
                return name or ident
    return None


def discover_device_links(html: str) -> list[str]:
    """Links whose href or text hints at a device/fleet list (English/Arabic)."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.lower().startswith("javascript:"):
            continue
        if _DEVICE_LINK_HINT.search(f"{href} {a.get_text(' ', strip=True)}"):
            if not href.startswith(("http://", "https://", "/")):
                href = f"/{href}"
            if href not in links:
                links.append(href)
    return links


class TrackingPortalFeed(DeviceFeed):
    """Logs in to the provider portal and scrapes its device list."""

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        devices_path: str | None = None,
        timeout: int | None = None,
        retries: int | None = None,
    ):
        super().__init__("tracking_portal")
        self.base_url = (base_url or settings.tracking_base_url).rstrip("/")
        self.username = username if username is not None else settings.tracking_username
        self.password = password if password is not None else settings.tracking_password
        self.devices_path = devices_path if devices_path is not None else settings.tracking_devices_path
        self.timeout = timeout or settings.tracking_request_timeout
        self.retries = settings.tracking_retries if retries is None else retries

    async def fetch_devices(self) -> list[DeviceRecord]:
        if not self.username or not self.password:
            raise FeedError("Tracking credentials not configured: TRACKING_USERNAME / TRACKING_PASSWORD")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                follow_redirects=True,
                headers=default_headers(),
            ) as client:
                await self._login(client)
                url, html = await self._find_devices_page(client)
        except httpx.HTTPError as e:
            raise FeedError(f"Tracking portal unreachable: {e}") from e

        devices = parse_devices_html(html)
        logger.info(f"Parsed {len(devices)} devices from {url}")
        if not devices:
            raise FeedError(f"No devices parsed from {url}. The page layout may have changed.")
        return devices

    async def _get(self, client: httpx.AsyncClient, path: str, **kwargs) -> httpx.Response:
        return await request_with_retry(client, "GET", path, retries=self.retries, **kwargs)

    async def _login(self, client: httpx.AsyncClient) -> None:
        login_path = settings.tracking_login_path
        logger.info("Fetching tracking portal login page")
        page = await self._get(client, login_path)
        soup = BeautifulSoup(page.text, "html.parser")

        form = extract_hidden_fields(soup)
        form[find_input_name(soup, _USERNAME_FIELDS) or "txtUserName"] = self.username
        form[find_input_name(soup, _PASSWORD_FIELDS) or "txtPassword"] = self.password
        form[find_input_name(soup, _SUBMIT_FIELDS) or "btnLogin"] = "Login"

        response = await request_with_retry(
            client, "POST", login_path, retries=self.retries, data=form, follow_redirects=False
        )
        status = response.status_code
        logger.info(f"Tracking portal login status: {status}")

        if 300 <= status < 400:
            return
        if status == 200:
            # a successful post redirects; landing back on a password form means rejected
            result = BeautifulSoup(response.text, "html.parser")
            if result.find("input", attrs={"type": "password"}) or _LOGIN_FAILED_HINT.search(result.get_text(" ")):
                raise FeedError("Login to tracking portal failed. Verify credentials or CAPTCHA.")
            return
        raise FeedError(f"Unexpected login status from tracking portal: {status}")

    async def _find_devices_page(self, client: httpx.AsyncClient) -> tuple[str, str]:
        if self.devices_path:
            response = await self._get(client, self.devices_path)
            if response.is_success and _DEVICE_PAGE_HINT.search(response.text):
                return self.devices_path, response.text
            raise FeedError(f"Configured devices page {self.devices_path} returned no device list")

        candidates: list[str] = []
        for path in HOME_PATHS:
            try:
                response = await self._get(client, path)
            except httpx.HTTPError as e:
                logger.debug(f"Home page fetch failed for {path}: {e}")
                continue
            if response.is_success and len(response.text) > 100:
                candidates = discover_device_links(response.text)
                logger.info(f"Discovered device page candidates: {candidates}")
                break

        for path in dict.fromkeys(candidates + DEVICE_PAGE_PATHS):
            try:
                response = await self._get(client, path)
            except httpx.HTTPError as e:
                logger.debug(f"Devices page fetch failed for {path}: {e}")
                continue
            if response.is_success and len(response.text) > 200 and _DEVICE_PAGE_HINT.search(response.text):
                logger.info(f"Using devices page: {path}")
                return path, response.text

        raise FeedError("Could not find the devices page. Set TRACKING_DEVICES_PATH to the exact list URL.")
